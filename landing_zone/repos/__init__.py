"""Repositories for persistent state."""

from .models import StateRecord
from .state import StateRepository

__all__ = ["StateRecord", "StateRepository"]
