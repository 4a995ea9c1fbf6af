"""Database package for openingdrill.

Only DrillDatabase is exported as the public API.
"""

from .database import DrillDatabase

__all__ = ["DrillDatabase"]
