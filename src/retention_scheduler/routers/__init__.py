"""Router package exports."""

from . import health, memory

__all__ = [
    "health",
    "memory",
]
