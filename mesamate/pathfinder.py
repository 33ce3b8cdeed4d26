"""
pathfinder.py — 4-connected weighted-grid A* and multi-stop delivery routes.

Grid cells are indexed grid[y][x]; 0 = free, 1 = blocked (tables). An optional
weights grid gives the cost of entering each free cell (default 1).
"""

from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

Cell = Tuple[int, int]

# Restaurant floor: tables along both side walls, open aisle in the middle
RESTAURANT_MAP = [
    [1, 0, 0, 0, 1],  # T1 . . . T2
    [1, 0, 0, 0, 1],  # T3 . . . T4
    [1, 0, 0, 0, 1],  # T5 . . . T6
    [1, 0, 0, 0, 1],  # T7 . . . T8
    [0, 0, 0, 0, 0],  # . . X . .
]

# Cells adjacent to each table, where the robot stops to serve it
TABLE_POSITIONS: Dict[str, Cell] = {
    "T1": (1, 0), "T2": (3, 0),
    "T3": (1, 1), "T4": (3, 1),
    "T5": (1, 2), "T6": (3, 2),
    "T7": (1, 3), "T8": (3, 3),
}

ROBOT_START_POSITION: Cell = (2, 4)


@dataclass
class PathResult:
    path: List[Cell]
    success: bool
    message: str
    # index into path where each stop is reached (routes only)
    stop_indices: List[int] = field(default_factory=list)
    failed_stop: Optional[Cell] = None


class AStarPathfinder:
    def __init__(self, grid: List[List[int]] = None, weights: List[List[float]] = None):
        self.grid = grid if grid is not None else RESTAURANT_MAP
        self.rows = len(self.grid)
        self.cols = len(self.grid[0]) if self.grid else 0
        self.weights = weights

    @staticmethod
    def heuristic(a: Cell, b: Cell) -> int:
        return abs(a[0] - b[0]) + abs(a[1] - b[1])

    def is_walkable(self, cell: Cell) -> bool:
        x, y = cell
        return 0 <= x < self.cols and 0 <= y < self.rows and self.grid[y][x] != 1

    def cost(self, cell: Cell) -> float:
        if self.weights is None:
            return 1
        return self.weights[cell[1]][cell[0]]

    def neighbors(self, cell: Cell) -> List[Cell]:
        x, y = cell
        out = []
        for dx, dy in ((0, -1), (1, 0), (0, 1), (-1, 0)):  # N, E, S, W
            nxt = (x + dx, y + dy)
            if self.is_walkable(nxt):
                out.append(nxt)
        return out

    def find_path(self, start: Cell, goal: Cell) -> PathResult:
        start, goal = tuple(start), tuple(goal)
        if not self.is_walkable(start):
            return PathResult([], False, "Invalid start position")
        if not self.is_walkable(goal):
            return PathResult([], False, "Invalid goal position")

        counter = itertools.count()
        # ties: lower f, then closer to goal, then first pushed
        open_heap = [(self.heuristic(start, goal), self.heuristic(start, goal), next(counter), start)]
        g_score: Dict[Cell, float] = {start: 0}
        came_from: Dict[Cell, Cell] = {}
        closed = set()

        while open_heap:
            _, _, _, current = heapq.heappop(open_heap)
            if current in closed:
                continue
            if current == goal:
                path = [current]
                while current in came_from:
                    current = came_from[current]
                    path.append(current)
                path.reverse()
                return PathResult(path, True, "Path found successfully")
            closed.add(current)
            for nxt in self.neighbors(current):
                if nxt in closed:
                    continue
                tentative = g_score[current] + self.cost(nxt)
                if tentative < g_score.get(nxt, float("inf")):
                    g_score[nxt] = tentative
                    came_from[nxt] = current
                    h = self.heuristic(nxt, goal)
                    heapq.heappush(open_heap, (tentative + h, h, next(counter), nxt))

        return PathResult([], False, "No path found")

    def find_route(self, start: Cell, stops: Sequence[Cell], names: Sequence[str] = None) -> PathResult:
        """Visit `stops` in order and return to `start`, as one concatenated path."""
        start = tuple(start)
        if not stops:
            return PathResult([start], True, "No tables to visit")

        total: List[Cell] = [start]
        stop_indices: List[int] = []
        current = start
        for i, stop in enumerate(stops):
            stop = tuple(stop)
            label = names[i] if names else f"stop at {stop}"
            result = self.find_path(current, stop)
            if not result.success:
                return PathResult(total, False, f"Cannot reach {label} at {stop}: {result.message}",
                                  stop_indices, failed_stop=stop)
            total.extend(result.path[1:])
            stop_indices.append(len(total) - 1)
            current = stop

        back = self.find_path(current, start)
        if not back.success:
            return PathResult(total, False, f"Cannot return to start position: {back.message}",
                              stop_indices, failed_stop=start)
        total.extend(back.path[1:])
        return PathResult(total, True, f"Successfully planned route visiting {len(stops)} tables",
                          stop_indices)
