from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Values are persisted as SQLite INTEGER (signed 64-bit).
MAX_AMOUNT = 2**63 - 1


@dataclass(frozen=True)
class Commodity:
    commodity_id: int
    available_quantity: int
    price: int
    owner: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": int(self.commodity_id),
            "available_quantity": int(self.available_quantity),
            "price": int(self.price),
            "owner": self.owner,
        }


@dataclass(frozen=True)
class EscrowAccount:
    owner: str
    balance: int

    def to_dict(self) -> dict[str, Any]:
        return {"owner": self.owner, "balance": int(self.balance)}


@dataclass(frozen=True)
class Position:
    trader: str
    position_id: int
    commodity_id: int
    quantity: int
    entry_price: int
    opened_at: int

    @property
    def collateral(self) -> int:
        """Escrow debited when the position was opened."""
        return self.quantity * self.entry_price

    def to_dict(self) -> dict[str, Any]:
        return {
            "trader": self.trader,
            "position_id": int(self.position_id),
            "commodity_id": int(self.commodity_id),
            "quantity": int(self.quantity),
            "entry_price": int(self.entry_price),
            "opened_at": int(self.opened_at),
        }


@dataclass(frozen=True)
class MarketState:
    administrator: str
    oracle_address: str
    trading_enabled: bool
    min_trade_quantity: int
    initialized_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "administrator": self.administrator,
            "oracle_address": self.oracle_address,
            "trading_enabled": bool(self.trading_enabled),
            "min_trade_quantity": int(self.min_trade_quantity),
            "initialized_at": int(self.initialized_at),
        }


@dataclass(frozen=True)
class Settlement:
    """Outcome of closing a position."""

    position: Position
    exit_price: int
    amount: int

    @property
    def realized_pnl(self) -> int:
        return self.position.quantity * (self.exit_price - self.position.entry_price)

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": self.position.to_dict(),
            "exit_price": int(self.exit_price),
            "amount": int(self.amount),
            "realized_pnl": int(self.realized_pnl),
        }
