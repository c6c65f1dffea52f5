"""Per-lap Grand Prix race simulation engine."""

__version__ = "0.4.0"
