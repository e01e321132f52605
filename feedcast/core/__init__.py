"""Core utilities shared across feedcast components."""

from .clock import Clock, utc_now
from .scheduler import PeriodicTask

__all__ = ["Clock", "PeriodicTask", "utc_now"]
