"""Utilities module."""

from .clock import Clock, utc_now
from .locks import KeyedLocks

__all__ = ['Clock', 'utc_now', 'KeyedLocks']
