"""
Linear release schedules: data model, storage, engine and derived views.
"""

from .engine import ScheduleEngine
from .models import Schedule, ScheduleKey
from .store import ScheduleStore
from .view import VestRecord, VestStatus, VestView

__all__ = [
    "Schedule",
    "ScheduleEngine",
    "ScheduleKey",
    "ScheduleStore",
    "VestRecord",
    "VestStatus",
    "VestView",
]
