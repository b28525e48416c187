"""
Cache persistente do drakeflow (valores, metadata, progresso, runs).
"""

from .store import PROGRESS_STATES, Cache

__all__ = ["PROGRESS_STATES", "Cache"]
