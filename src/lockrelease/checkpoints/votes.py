"""
Historical balance queries over the checkpoint ledger.

Exposes the familiar votes-token read surface (current and past balances,
past total supply, raw checkpoint access). There is no delegation: an
account's votes are its own checkpointed balance.
"""

from __future__ import annotations

from lockrelease.checkpoints import index
from lockrelease.checkpoints.index import Checkpoint
from lockrelease.checkpoints.ledger import CheckpointLedger


class CheckpointVotes:
    def __init__(self, ledger: CheckpointLedger) -> None:
        self.ledger = ledger

    def clock(self) -> int:
        return self.ledger.clock

    def num_checkpoints(self, asset: str, account: str) -> int:
        return len(self.ledger.series(asset, account))

    def checkpoints(self, asset: str, account: str, pos: int) -> Checkpoint:
        return index.checkpoint_at(self.ledger.series(asset, account), pos)

    def get_votes(self, asset: str, account: str) -> int:
        return index.current_value(self.ledger.series(asset, account))

    def get_past_votes(self, asset: str, account: str, timepoint: int) -> int:
        series, clock = self.ledger.snapshot(asset, account)
        return index.value_at(series, timepoint, clock)

    def get_total_supply(self, asset: str) -> int:
        return index.current_value(self.ledger.series(asset))

    def get_past_total_supply(self, asset: str, timepoint: int) -> int:
        series, clock = self.ledger.snapshot(asset)
        return index.value_at(series, timepoint, clock)
