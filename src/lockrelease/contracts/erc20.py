"""
ERC20 Token and Custody Collaborator.

This module provides the fungible token the ledger escrows, including:
- Basic token operations (transfer, approve, transferFrom)
- Minting and burning
- Optional fee-on-transfer (fee is burned)
- Optional checkpoint hooks recording every balance change
- ``ERC20Custody``, the asset-transfer collaborator used by the schedule engine

Security features:
- Overflow protection (256-bit bound)
- Zero address checks
- Balance underflow prevention
- Allowance validation
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from lockrelease.core.addresses import ZERO_ADDRESS, is_zero_address, normalize_address
from lockrelease.core.exceptions import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    TransferRejectedError,
)

if TYPE_CHECKING:
    from lockrelease.checkpoints.ledger import CheckpointLedger

logger = logging.getLogger(__name__)

MAX_FEE_BPS = 10_000


@dataclass
class TokenEvent:
    """Represents an ERC20 event."""

    event_type: str  # "Transfer" or "Approval"
    from_address: str
    to_address: str
    value: int
    block_number: int = 0


@dataclass
class ERC20Token:
    """
    ERC20 token with owner-only minting, holder burning and an optional
    transfer fee.

    When ``checkpoints`` is set, every mint, burn and transfer is mirrored
    into that ledger at the marker returned by ``marker_provider``. The
    checkpoint write happens after all token checks and before balances
    change, so a rejected checkpoint write aborts the token operation too.
    """

    # Token metadata
    name: str
    symbol: str
    decimals: int = 18
    total_supply: int = 0

    # Contract address
    address: str = ""

    # Owner (for minting permissions)
    owner: str = ""

    # State
    balances: dict[str, int] = field(default_factory=dict)
    allowances: dict[str, dict[str, int]] = field(default_factory=dict)

    # Event log
    events: list[TokenEvent] = field(default_factory=list)

    # Supply cap (0 = unlimited)
    max_supply: int = 0

    # Fee charged on transfer/transferFrom in basis points, burned
    transfer_fee_bps: int = 0

    paused: bool = False

    # Checkpoint hooks
    checkpoints: Optional["CheckpointLedger"] = field(default=None, repr=False, compare=False)
    marker_provider: Optional[Callable[[], int]] = field(default=None, repr=False, compare=False)

    UINT256_MAX: int = 2**256 - 1

    def __post_init__(self) -> None:
        if not self.address:
            addr_input = f"{self.name}{self.symbol}{self.owner}".encode()
            addr_hash = hashlib.sha3_256(addr_input).digest()
            self.address = f"0x{addr_hash[-20:].hex()}"
        self.address = normalize_address(self.address)
        self.owner = normalize_address(self.owner)
        # A full-value fee would deliver nothing to the recipient.
        if not 0 <= self.transfer_fee_bps < MAX_FEE_BPS:
            raise TransferRejectedError(
                f"ERC20: invalid transfer fee ({self.transfer_fee_bps} bps)"
            )

    # ==================== View Functions ====================

    def balance_of(self, account: str) -> int:
        return self.balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        owner_norm = normalize_address(owner)
        spender_norm = normalize_address(spender)
        return self.allowances.get(owner_norm, {}).get(spender_norm, 0)

    def fee_for(self, amount: int) -> int:
        """Fee burned when ``amount`` is transferred."""
        return amount * self.transfer_fee_bps // MAX_FEE_BPS

    # ==================== State-Changing Functions ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Transfer tokens from sender to recipient.

        Raises:
            InsufficientBalanceError: sender balance too low
            TransferRejectedError: paused token, zero recipient or bad amount
        """
        self._require_not_paused()
        sender_norm = normalize_address(sender)
        recipient_norm = normalize_address(recipient)

        self._validate_address(recipient_norm, "recipient")
        self._validate_amount(amount)

        sender_balance = self.balances.get(sender_norm, 0)
        if sender_balance < amount:
            raise InsufficientBalanceError(
                f"ERC20: transfer amount exceeds balance "
                f"({amount} > {sender_balance})",
                details={"token": self.address, "account": sender_norm},
            )

        self._move(sender_norm, recipient_norm, amount)

        logger.debug(
            "ERC20 transfer",
            extra={
                "event": "erc20.transfer",
                "token": self.symbol,
                "from": sender_norm[:10],
                "to": recipient_norm[:10],
                "amount": amount,
            }
        )

        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        """Approve spender to spend tokens on behalf of owner."""
        self._require_not_paused()
        owner_norm = normalize_address(owner)
        spender_norm = normalize_address(spender)

        self._validate_address(spender_norm, "spender")
        self._validate_amount(amount)

        self.allowances.setdefault(owner_norm, {})[spender_norm] = amount

        self._emit("Approval", owner_norm, spender_norm, amount)

        return True

    def transfer_from(
        self, spender: str, from_addr: str, to_addr: str, amount: int
    ) -> bool:
        """
        Transfer tokens using an allowance.

        Raises:
            InsufficientAllowanceError: allowance too low
            InsufficientBalanceError: owner balance too low
            TransferRejectedError: paused token, zero recipient or bad amount
        """
        self._require_not_paused()
        spender_norm = normalize_address(spender)
        from_norm = normalize_address(from_addr)
        to_norm = normalize_address(to_addr)

        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)

        current_allowance = self.allowance(from_norm, spender_norm)
        if current_allowance < amount:
            raise InsufficientAllowanceError(
                f"ERC20: transfer amount exceeds allowance ({amount} > {current_allowance})",
                details={"token": self.address, "owner": from_norm, "spender": spender_norm},
            )

        from_balance = self.balances.get(from_norm, 0)
        if from_balance < amount:
            raise InsufficientBalanceError(
                f"ERC20: transfer amount exceeds balance ({amount} > {from_balance})",
                details={"token": self.address, "account": from_norm},
            )

        self._move(from_norm, to_norm, amount)

        # Allowance is spent only once the move went through
        if current_allowance != self.UINT256_MAX:
            self.allowances.setdefault(from_norm, {})[spender_norm] = current_allowance - amount

        return True

    # ==================== Minting & Burning ====================

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """
        Mint new tokens (owner only).

        Raises:
            TransferRejectedError: caller not owner, cap exceeded, zero recipient
        """
        self._require_not_paused()
        self._require_owner(minter)

        to_norm = normalize_address(to)
        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)

        if self.max_supply > 0 and self.total_supply + amount > self.max_supply:
            raise TransferRejectedError(
                f"ERC20: mint would exceed max supply "
                f"({self.total_supply + amount} > {self.max_supply})"
            )

        if self.checkpoints is not None and amount:
            self.checkpoints.mint(self.address, to_norm, amount, self._marker())

        self.total_supply += amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount

        self._emit("Transfer", ZERO_ADDRESS, to_norm, amount)

        logger.info(
            "ERC20 mint",
            extra={
                "event": "erc20.mint",
                "token": self.symbol,
                "to": to_norm[:10],
                "amount": amount,
                "new_supply": self.total_supply,
            }
        )

        return True

    def burn(self, holder: str, amount: int) -> bool:
        """Burn tokens from holder's balance."""
        self._require_not_paused()
        holder_norm = normalize_address(holder)
        self._validate_amount(amount)

        balance = self.balances.get(holder_norm, 0)
        if balance < amount:
            raise InsufficientBalanceError(
                f"ERC20: burn amount exceeds balance ({amount} > {balance})",
                details={"token": self.address, "account": holder_norm},
            )

        if self.checkpoints is not None and amount:
            self.checkpoints.burn(self.address, holder_norm, amount, self._marker())

        self.balances[holder_norm] = balance - amount
        self.total_supply -= amount

        self._emit("Transfer", holder_norm, ZERO_ADDRESS, amount)

        logger.info(
            "ERC20 burn",
            extra={
                "event": "erc20.burn",
                "token": self.symbol,
                "from": holder_norm[:10],
                "amount": amount,
                "new_supply": self.total_supply,
            }
        )

        return True

    # ==================== Admin Functions ====================

    def pause(self, caller: str) -> bool:
        """Pause token operations (owner only)."""
        self._require_owner(caller)
        self.paused = True
        return True

    def unpause(self, caller: str) -> bool:
        """Unpause token operations (owner only)."""
        self._require_owner(caller)
        self.paused = False
        return True

    # ==================== Helpers ====================

    def _move(self, from_norm: str, to_norm: str, amount: int) -> None:
        fee = self.fee_for(amount)
        net = amount - fee

        if self.checkpoints is not None and amount:
            self.checkpoints.transfer(
                self.address, from_norm, to_norm, net, self._marker(), burned=fee
            )

        self.balances[from_norm] = self.balances.get(from_norm, 0) - amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + net
        self._emit("Transfer", from_norm, to_norm, net)

        if fee:
            self.total_supply -= fee
            self._emit("Transfer", from_norm, ZERO_ADDRESS, fee)

    def _marker(self) -> int:
        if self.marker_provider is not None:
            return int(self.marker_provider())
        return int(time.time())

    def _validate_address(self, address: str, field_name: str) -> None:
        if is_zero_address(address):
            raise TransferRejectedError(f"ERC20: {field_name} is zero address")

    def _validate_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise TransferRejectedError("ERC20: amount must be an integer")
        if amount < 0:
            raise TransferRejectedError("ERC20: amount cannot be negative")
        if amount > self.UINT256_MAX:
            raise TransferRejectedError("ERC20: amount exceeds uint256")

    def _require_owner(self, caller: str) -> None:
        if normalize_address(caller) != self.owner:
            raise TransferRejectedError("ERC20: caller is not owner")

    def _require_not_paused(self) -> None:
        if self.paused:
            raise TransferRejectedError("ERC20: token is paused")

    def _emit(self, event_type: str, from_addr: str, to_addr: str, amount: int) -> None:
        block_number = self._marker() if self.checkpoints is not None else 0
        self.events.append(
            TokenEvent(
                event_type=event_type,
                from_address=from_addr,
                to_address=to_addr,
                value=amount,
                block_number=block_number,
            )
        )

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "total_supply": self.total_supply,
            "address": self.address,
            "owner": self.owner,
            "balances": dict(self.balances),
            "allowances": {k: dict(v) for k, v in self.allowances.items()},
            "max_supply": self.max_supply,
            "transfer_fee_bps": self.transfer_fee_bps,
            "paused": self.paused,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ERC20Token":
        token = cls(
            name=data["name"],
            symbol=data["symbol"],
            decimals=data.get("decimals", 18),
            total_supply=data.get("total_supply", 0),
            address=data.get("address", ""),
            owner=data.get("owner", ""),
            max_supply=data.get("max_supply", 0),
            transfer_fee_bps=data.get("transfer_fee_bps", 0),
            paused=data.get("paused", False),
        )
        token.balances = dict(data.get("balances", {}))
        token.allowances = {
            k: dict(v) for k, v in data.get("allowances", {}).items()
        }
        return token


class ERC20Custody:
    """
    Asset-transfer collaborator holding escrowed tokens at ``custodian``.

    ``transfer_in`` reports the custodian's real balance change, so tokens
    that charge a transfer fee are credited only with what arrived.
    """

    def __init__(self, token: ERC20Token, custodian: str) -> None:
        if is_zero_address(custodian):
            raise TransferRejectedError("ERC20Custody: custodian is zero address")
        self.token = token
        self.custodian = normalize_address(custodian)

    def transfer_in(self, payer: str, amount: int) -> int:
        before = self.token.balance_of(self.custodian)
        self.token.transfer_from(self.custodian, payer, self.custodian, amount)
        received = self.token.balance_of(self.custodian) - before
        if received != amount:
            logger.info(
                "Custody received less than requested",
                extra={
                    "event": "custody.short_transfer",
                    "token": self.token.symbol,
                    "requested": amount,
                    "received": received,
                },
            )
        return received

    def transfer_out(self, recipient: str, amount: int) -> None:
        self.token.transfer(self.custodian, recipient, amount)

    def held(self) -> int:
        return self.token.balance_of(self.custodian)


class ERC20Factory:
    """
    Factory for creating ERC20 tokens.

    Tokens created here share one checkpoint ledger and marker provider
    when those are supplied.
    """

    def __init__(
        self,
        checkpoints: Optional["CheckpointLedger"] = None,
        marker_provider: Optional[Callable[[], int]] = None,
    ) -> None:
        self.checkpoints = checkpoints
        self.marker_provider = marker_provider
        self.deployed_tokens: dict[str, ERC20Token] = {}

    def create_token(
        self,
        creator: str,
        name: str,
        symbol: str,
        decimals: int = 18,
        initial_supply: int = 0,
        max_supply: int = 0,
        transfer_fee_bps: int = 0,
        mint_to: str | None = None,
    ) -> ERC20Token:
        """
        Create a new ERC20 token.

        Args:
            creator: Address creating the token (becomes owner)
            name: Token name
            symbol: Token symbol (ticker)
            decimals: Decimal places (default 18)
            initial_supply: Initial supply to mint
            max_supply: Maximum supply cap (0 = unlimited)
            transfer_fee_bps: Fee burned on every transfer, in basis points
            mint_to: Address to mint initial supply to (defaults to creator)

        Raises:
            TransferRejectedError: If creation fails
        """
        if not name:
            raise TransferRejectedError("ERC20Factory: name cannot be empty")
        if not symbol:
            raise TransferRejectedError("ERC20Factory: symbol cannot be empty")
        if decimals < 0 or decimals > 18:
            raise TransferRejectedError("ERC20Factory: invalid decimals")
        if initial_supply < 0:
            raise TransferRejectedError("ERC20Factory: invalid initial supply")
        if max_supply < 0:
            raise TransferRejectedError("ERC20Factory: invalid max supply")
        if max_supply > 0 and initial_supply > max_supply:
            raise TransferRejectedError("ERC20Factory: initial supply exceeds max")

        seed = f"{name}{symbol}{normalize_address(creator)}{len(self.deployed_tokens)}".encode()
        address = f"0x{hashlib.sha3_256(seed).digest()[-20:].hex()}"

        token = ERC20Token(
            name=name,
            symbol=symbol,
            decimals=decimals,
            address=address,
            owner=creator,
            max_supply=max_supply,
            transfer_fee_bps=transfer_fee_bps,
        )
        self.attach(token)

        if initial_supply > 0:
            token.mint(creator, mint_to or creator, initial_supply)

        logger.info(
            "ERC20 token created",
            extra={
                "event": "erc20.created",
                "address": token.address,
                "token_name": name,
                "symbol": symbol,
                "initial_supply": initial_supply,
                "creator": normalize_address(creator)[:10],
            }
        )

        return token

    def attach(self, token: ERC20Token) -> ERC20Token:
        """Register an existing token and wire it to the shared checkpoint hooks."""
        token.checkpoints = self.checkpoints
        token.marker_provider = self.marker_provider
        self.deployed_tokens[token.address] = token
        return token

    def get_token(self, address: str) -> ERC20Token | None:
        return self.deployed_tokens.get(normalize_address(address))

    def list_tokens(self) -> list[Dict]:
        return [
            {
                "address": address,
                "name": token.name,
                "symbol": token.symbol,
                "decimals": token.decimals,
                "total_supply": token.total_supply,
                "owner": token.owner,
                "transfer_fee_bps": token.transfer_fee_bps,
            }
            for address, token in self.deployed_tokens.items()
        ]
