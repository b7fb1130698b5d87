"""
Asset-transfer collaborators.

- AssetTransfer: the interface the schedule engine calls to move tokens
- AssetRegistry: asset address -> collaborator lookup
- ERC20Token / ERC20Factory: fungible token with optional checkpoint hooks
- ERC20Custody: AssetTransfer implementation over an ERC20 token
"""

from .asset import AssetRegistry, AssetTransfer
from .erc20 import ERC20Custody, ERC20Factory, ERC20Token, TokenEvent

__all__ = [
    "AssetRegistry",
    "AssetTransfer",
    "ERC20Custody",
    "ERC20Factory",
    "ERC20Token",
    "TokenEvent",
]
