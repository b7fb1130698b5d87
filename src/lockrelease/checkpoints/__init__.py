"""
Checkpoint history: append-only per-account value series and the
binary-search read path used for point-in-time lookups.
"""

from .index import Checkpoint, current_value, value_at
from .ledger import CheckpointLedger, SeriesKey
from .votes import CheckpointVotes

__all__ = [
    "Checkpoint",
    "CheckpointLedger",
    "CheckpointVotes",
    "SeriesKey",
    "current_value",
    "value_at",
]
