"""Permission repositories."""

from .grant_repository import AsyncPGGrantRepository
from .grant_writer import AsyncPGGrantWriter
from .timed_repository import TimedGrantRepository

__all__ = [
    "AsyncPGGrantRepository",
    "AsyncPGGrantWriter",
    "TimedGrantRepository",
]
