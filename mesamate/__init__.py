"""MesaMate restaurant delivery robot: host planner, serial link and device firmware."""

__version__ = "0.3.0"
