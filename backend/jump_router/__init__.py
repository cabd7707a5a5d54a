"""Multi-waypoint jump route planning over a static star map."""

__version__ = "0.1.0"
