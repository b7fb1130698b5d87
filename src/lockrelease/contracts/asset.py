"""
Asset-transfer collaborator interface.

The schedule engine never moves tokens itself. It asks the collaborator
registered for an asset to pull funds in at schedule creation and push
them out on release, and it trusts only the amount the collaborator says
actually arrived.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Protocol, runtime_checkable

from lockrelease.core.addresses import normalize_address
from lockrelease.core.exceptions import TransferRejectedError

logger = logging.getLogger(__name__)


@runtime_checkable
class AssetTransfer(Protocol):
    def transfer_in(self, payer: str, amount: int) -> int:
        """Pull ``amount`` from ``payer`` into custody. Returns the amount actually received.

        Raises:
            InsufficientAllowanceError, InsufficientBalanceError, TransferRejectedError
        """
        ...

    def transfer_out(self, recipient: str, amount: int) -> None:
        """Send ``amount`` from custody to ``recipient``.

        Raises:
            TransferRejectedError
        """
        ...


class AssetRegistry:
    """Maps asset identifiers to the collaborator that moves them."""

    def __init__(self) -> None:
        self._transfers: Dict[str, AssetTransfer] = {}
        self._lock = threading.Lock()

    def register(self, asset: str, transfer: AssetTransfer) -> None:
        if not isinstance(transfer, AssetTransfer):
            raise TypeError(f"{type(transfer).__name__} does not implement AssetTransfer")
        with self._lock:
            self._transfers[normalize_address(asset)] = transfer
        logger.debug("Registered transfer collaborator for %s", asset)

    def get(self, asset: str) -> AssetTransfer:
        transfer = self._transfers.get(normalize_address(asset))
        if transfer is None:
            raise TransferRejectedError(
                "no transfer collaborator registered for asset",
                details={"asset": normalize_address(asset)},
            )
        return transfer

    def assets(self) -> List[str]:
        return list(self._transfers)

    def __contains__(self, asset: str) -> bool:
        return normalize_address(asset) in self._transfers
