"""
Ledger error taxonomy.

Every operation either completes or raises one of these; nothing is persisted
on the failure path. `code` is unique per class. `legacy_code` is the coarser
code older callers branch on (a missing position used to be reported as an
invalid trade quantity), and subclassing keeps `except InvalidTradeQuantity`
working for those callers.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for all ledger failures."""

    code = "LEDGER_ERROR"
    legacy_code: str | None = None

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code.replace("_", " ").lower())

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "legacy_code": self.legacy_code or self.code,
            "message": self.message,
        }


class Unauthorized(LedgerError):
    code = "UNAUTHORIZED"


class InvalidCommodityPrice(LedgerError):
    code = "INVALID_COMMODITY_PRICE"


class CommodityNotFound(InvalidCommodityPrice):
    code = "COMMODITY_NOT_FOUND"
    legacy_code = "INVALID_COMMODITY_PRICE"


class InsufficientEscrowBalance(LedgerError):
    code = "INSUFFICIENT_ESCROW_BALANCE"


class TradingDisabled(LedgerError):
    code = "TRADING_DISABLED"


class InvalidTradeQuantity(LedgerError):
    code = "INVALID_TRADE_QUANTITY"


class PositionNotFound(InvalidTradeQuantity):
    code = "POSITION_NOT_FOUND"
    legacy_code = "INVALID_TRADE_QUANTITY"


class PositionAlreadyOpen(LedgerError):
    code = "POSITION_ALREADY_OPEN"


class EscrowTransactionFailed(LedgerError):
    code = "ESCROW_TRANSACTION_FAILED"


class NotFound(LedgerError):
    """Read-only lookup miss."""

    code = "NOT_FOUND"


class AlreadyInitialized(LedgerError):
    code = "ALREADY_INITIALIZED"


class NotInitialized(LedgerError):
    code = "NOT_INITIALIZED"


class ArithmeticOverflow(LedgerError):
    code = "ARITHMETIC_OVERFLOW"


class EngineUnavailable(LedgerError):
    """The ledger engine is not running or did not answer in time."""

    code = "ENGINE_UNAVAILABLE"
