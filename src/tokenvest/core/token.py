"""
Fungible token ledger used as the vault's custody collaborator.

Provides a minimal ERC20-style token (balances, allowances, transfer,
transferFrom, owner minting) and a custody adapter exposing the narrow
interface the vault consumes:

- transfer_into(from_address, amount) -> bool
- transfer_out(to_address, amount) -> bool
- balance() -> int

Security features:
- Zero address checks
- Balance underflow prevention
- Allowance validation
- Amounts bounded to 256 bits
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Protocol

from .exceptions import TokenError

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40
UINT256_MAX = 2**256 - 1


def normalize_address(address: str) -> str:
    """Normalize address to lowercase with surrounding whitespace removed."""
    return (address or "").strip().lower()


def is_zero_address(address: str) -> bool:
    """True for empty addresses and the all-zero address."""
    normalized = normalize_address(address)
    return not normalized or normalized == ZERO_ADDRESS


class TokenLedger(Protocol):
    """Interface the vault requires from its token collaborator."""

    def transfer_into(self, from_address: str, amount: int) -> bool: ...

    def transfer_out(self, to_address: str, amount: int) -> bool: ...

    def balance(self) -> int: ...


@dataclass
class TokenEvent:
    """Represents a token event."""

    event_type: str  # "Transfer" or "Approval"
    from_address: str
    to_address: str
    value: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ERC20Token:
    """
    In-process ERC20-style token.

    Security considerations:
    - Amounts must fit in 256 bits
    - Zero address checks on recipients and spenders
    - Only the owner may mint
    """

    name: str
    symbol: str
    decimals: int = 18
    total_supply: int = 0
    address: str = ""
    owner: str = ""

    balances: Dict[str, int] = field(default_factory=dict)
    allowances: Dict[str, Dict[str, int]] = field(default_factory=dict)
    events: list[TokenEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.address:
            addr_input = f"{self.name}{self.symbol}{time.time()}".encode()
            addr_hash = hashlib.sha3_256(addr_input).digest()
            self.address = f"0x{addr_hash[-20:].hex()}"
        self.owner = normalize_address(self.owner)

    # ==================== View Functions ====================

    def balance_of(self, account: str) -> int:
        return self.balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        owner_norm = normalize_address(owner)
        spender_norm = normalize_address(spender)
        return self.allowances.get(owner_norm, {}).get(spender_norm, 0)

    # ==================== State-Changing Functions ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Transfer tokens from sender to recipient.

        Raises:
            TokenError: If the transfer is invalid or the balance is short
        """
        sender_norm = normalize_address(sender)
        recipient_norm = normalize_address(recipient)

        self._validate_address(recipient_norm, "recipient")
        self._validate_amount(amount)

        sender_balance = self.balances.get(sender_norm, 0)
        if sender_balance < amount:
            raise TokenError(
                f"{self.symbol}: transfer amount exceeds balance ({amount} > {sender_balance})",
                details={"from": sender_norm, "amount": amount, "balance": sender_balance},
            )

        self.balances[sender_norm] = sender_balance - amount
        self.balances[recipient_norm] = self.balances.get(recipient_norm, 0) + amount
        self._emit("Transfer", sender_norm, recipient_norm, amount)

        logger.debug(
            "Token transfer",
            extra={
                "event": "token.transfer",
                "token": self.symbol,
                "from": sender_norm[:10],
                "to": recipient_norm[:10],
                "amount": amount,
            },
        )
        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        owner_norm = normalize_address(owner)
        spender_norm = normalize_address(spender)

        self._validate_address(spender_norm, "spender")
        self._validate_amount(amount)

        self.allowances.setdefault(owner_norm, {})[spender_norm] = amount
        self._emit("Approval", owner_norm, spender_norm, amount)
        return True

    def transfer_from(self, spender: str, from_addr: str, to_addr: str, amount: int) -> bool:
        """
        Transfer tokens using an allowance.

        Raises:
            TokenError: If allowance or balance is insufficient
        """
        spender_norm = normalize_address(spender)
        from_norm = normalize_address(from_addr)
        to_norm = normalize_address(to_addr)

        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)

        current_allowance = self.allowance(from_norm, spender_norm)
        if current_allowance < amount:
            raise TokenError(
                f"{self.symbol}: insufficient allowance ({current_allowance} < {amount})",
                details={"owner": from_norm, "spender": spender_norm, "amount": amount},
            )

        from_balance = self.balances.get(from_norm, 0)
        if from_balance < amount:
            raise TokenError(
                f"{self.symbol}: transfer amount exceeds balance ({amount} > {from_balance})",
                details={"from": from_norm, "amount": amount, "balance": from_balance},
            )

        if current_allowance != UINT256_MAX:
            self.allowances[from_norm][spender_norm] = current_allowance - amount

        self.balances[from_norm] = from_balance - amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self._emit("Transfer", from_norm, to_norm, amount)
        return True

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """Mint new tokens (owner only)."""
        if normalize_address(minter) != self.owner:
            raise TokenError(f"{self.symbol}: caller is not owner")

        to_norm = normalize_address(to)
        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)
        if self.total_supply + amount > UINT256_MAX:
            raise TokenError(f"{self.symbol}: mint would overflow total supply")

        self.total_supply += amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self._emit("Transfer", ZERO_ADDRESS, to_norm, amount)

        logger.info(
            "Token mint",
            extra={
                "event": "token.mint",
                "token": self.symbol,
                "to": to_norm[:10],
                "amount": amount,
                "new_supply": self.total_supply,
            },
        )
        return True

    # ==================== Helpers ====================

    def _validate_address(self, address: str, field_name: str) -> None:
        if is_zero_address(address):
            raise TokenError(f"{self.symbol}: {field_name} is zero address")

    def _validate_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise TokenError(f"{self.symbol}: amount must be an integer")
        if amount < 0:
            raise TokenError(f"{self.symbol}: amount cannot be negative")
        if amount > UINT256_MAX:
            raise TokenError(f"{self.symbol}: amount exceeds uint256")

    def _emit(self, event_type: str, from_addr: str, to_addr: str, amount: int) -> None:
        self.events.append(
            TokenEvent(
                event_type=event_type,
                from_address=from_addr,
                to_address=to_addr,
                value=amount,
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
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ERC20Token":
        token = cls(
            name=data["name"],
            symbol=data["symbol"],
            decimals=data.get("decimals", 18),
            total_supply=int(data.get("total_supply", 0)),
            address=data.get("address", ""),
            owner=data.get("owner", ""),
        )
        token.balances = {k: int(v) for k, v in data.get("balances", {}).items()}
        token.allowances = {
            owner: {spender: int(v) for spender, v in spenders.items()}
            for owner, spenders in data.get("allowances", {}).items()
        }
        return token


class TokenCustody:
    """
    Custody adapter holding vault funds in an ERC20Token.

    Deposits pull tokens with ``transfer_from`` so the depositor must have
    approved the vault address beforehand; payouts are plain transfers.
    """

    def __init__(self, token: ERC20Token, vault_address: str) -> None:
        if is_zero_address(vault_address):
            raise TokenError("Custody address cannot be the zero address")
        self.token = token
        self.vault_address = normalize_address(vault_address)

    def transfer_into(self, from_address: str, amount: int) -> bool:
        return self.token.transfer_from(self.vault_address, from_address, self.vault_address, amount)

    def transfer_out(self, to_address: str, amount: int) -> bool:
        return self.token.transfer(self.vault_address, to_address, amount)

    def balance(self) -> int:
        return self.token.balance_of(self.vault_address)
