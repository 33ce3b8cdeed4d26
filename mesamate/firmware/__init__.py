"""Device-side code: motion state machine, obstacle monitor, polling loop, Pi backends."""
