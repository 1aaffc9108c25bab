"""
Trade engine: the host for every public ledger operation.

Every operation runs under one process-wide lock, and every mutating
operation runs inside one SQLite write transaction, so no operation can
observe another's partial writes. The caller principal is passed explicitly
to each operation.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from typing import Any, Callable

import pandas as pd

from escrowtrader.broker.paper_transfer import PaperTransferRail
from escrowtrader.db.connection import connect, write_transaction
from escrowtrader.db.repositories import events as events_repo
from escrowtrader.db.repositories import trades as trades_repo
from escrowtrader.db.schema import init_db
from escrowtrader.domain.errors import AlreadyInitialized, CommodityNotFound, TradingDisabled
from escrowtrader.domain.models import Commodity, EscrowAccount, MarketState, Position, Settlement
from escrowtrader.ledger.audit import ReconciliationReport, reconcile
from escrowtrader.ledger.escrow import EscrowLedger
from escrowtrader.ledger.market import MarketControl
from escrowtrader.ledger.positions import PositionBook
from escrowtrader.ledger.registry import CommodityRegistry
from escrowtrader.ports.transfer import FundsTransferPort
from escrowtrader.trading.validation import trade_cost, validate_trade
from escrowtrader.utils.config_loader import resolve_db_path

logger = logging.getLogger(__name__)


def _unix_now() -> int:
    return int(time.time())


class TradeEngine:
    def __init__(
        self,
        conn: sqlite3.Connection,
        rail: FundsTransferPort,
        custodian: str,
        *,
        min_trade_quantity: int = 1,
        clock: Callable[[], int] | None = None,
    ):
        self.conn = conn
        self.clock = clock or _unix_now
        self._lock = threading.Lock()

        init_db(conn)
        self.market = MarketControl(conn, self.clock, min_trade_quantity)
        self.registry = CommodityRegistry(conn, self.market)
        self.escrow = EscrowLedger(conn, rail, custodian)
        self.positions = PositionBook(conn)

    @classmethod
    def from_config(cls, cfg: dict[str, Any], rail: FundsTransferPort | None = None) -> TradeEngine:
        """Build the engine from a loaded config (see `load_config`)."""
        if rail is None:
            paper_cfg = (cfg.get("transfer") or {}).get("paper") or {}
            rail = PaperTransferRail(default_balance=int(paper_cfg.get("default_wallet_balance", 0)))

        market_cfg = cfg.get("market") or {}
        engine = cls(
            connect(resolve_db_path(cfg)),
            rail,
            str(cfg["custodian"]["principal"]),
            min_trade_quantity=int(market_cfg.get("min_trade_quantity", 1)),
        )

        administrator = market_cfg.get("administrator")
        if administrator:
            try:
                engine.initialize(str(administrator))
            except AlreadyInitialized:
                logger.info("Market already initialized; configured administrator ignored")
        return engine

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    # ----- Market control -----

    def initialize(self, administrator: str) -> MarketState:
        with self._lock, write_transaction(self.conn):
            return self.market.initialize(administrator)

    def update_price_oracle(self, caller: str, address: str) -> None:
        with self._lock, write_transaction(self.conn):
            self.market.update_oracle_address(caller, address)

    def toggle_trading(self, caller: str) -> bool:
        with self._lock, write_transaction(self.conn):
            return self.market.toggle_trading(caller)

    def set_min_trade_quantity(self, caller: str, quantity: int) -> None:
        with self._lock, write_transaction(self.conn):
            self.market.set_min_trade_quantity(caller, quantity)

    def get_market_state(self) -> MarketState:
        with self._lock:
            return self.market.state()

    def is_initialized(self) -> bool:
        with self._lock:
            return self.market.peek() is not None

    # ----- Commodities -----

    def register_commodity(self, caller: str, commodity_id: int, quantity: int, price: int) -> Commodity:
        with self._lock, write_transaction(self.conn):
            return self.registry.register(caller, commodity_id, quantity, price)

    def get_commodity(self, commodity_id: int) -> Commodity:
        with self._lock:
            return self.registry.get(commodity_id)

    def list_commodities(self) -> list[Commodity]:
        with self._lock:
            return self.registry.all()

    # ----- Escrow -----

    def deposit_funds(self, caller: str, amount: int) -> int:
        with self._lock:
            return self.escrow.deposit(caller, amount)

    def withdraw_funds(self, caller: str, amount: int) -> int:
        with self._lock:
            return self.escrow.withdraw(caller, amount)

    def get_escrow_balance(self, trader: str) -> int:
        with self._lock:
            return self.escrow.balance(trader)

    def get_escrow_account(self, trader: str) -> EscrowAccount:
        with self._lock:
            return self.escrow.account(trader)

    # ----- Positions -----

    def execute_trade(self, caller: str, commodity_id: int, quantity: int, position_id: int) -> Position:
        """
        Open a fully collateralized position at the commodity's current price.

        Checks run in order: trading switch, commodity, quantity/price,
        escrow sufficiency, position key. A position id that is already open
        for this trader is rejected rather than overwritten.
        """
        with self._lock, write_transaction(self.conn):
            state = self.market.state()
            if not state.trading_enabled:
                raise TradingDisabled("trading is currently disabled")

            commodity = self.registry.find(commodity_id)
            if commodity is None:
                raise CommodityNotFound(f"commodity {commodity_id} is not registered")

            validate_trade(quantity, commodity.price, state.min_trade_quantity)
            cost = trade_cost(quantity, commodity.price)
            self.escrow.debit(caller, cost)

            position = Position(
                trader=caller,
                position_id=position_id,
                commodity_id=commodity_id,
                quantity=quantity,
                entry_price=commodity.price,
                opened_at=self.clock(),
            )
            self.positions.open(position)

            events_repo.log_event(
                self.conn,
                "TRADE_OPEN",
                caller,
                trader=caller,
                amount=cost,
                commodity_id=commodity_id,
                position_id=position_id,
                message=f"{quantity} @ {commodity.price}",
            )
            trades_repo.record_trade(
                self.conn,
                caller,
                position_id,
                commodity_id,
                "OPEN",
                quantity,
                commodity.price,
                cost,
                commodity.price,
            )

        logger.info(
            "Opened position %s for %s: %s x commodity %s @ %s (cost %s)",
            position_id,
            caller,
            quantity,
            commodity_id,
            commodity.price,
            cost,
        )
        return position

    def close_position(self, caller: str, position_id: int) -> Settlement:
        """
        Settle an open position at the commodity's current price.

        The trader is credited `quantity * current_price` outright; the gain or
        loss against the entry collateral is recorded in trade history.
        """
        with self._lock, write_transaction(self.conn):
            position = self.positions.take(caller, position_id)

            commodity = self.registry.find(position.commodity_id)
            if commodity is None:
                raise CommodityNotFound(f"commodity {position.commodity_id} is no longer registered")

            amount = trade_cost(position.quantity, commodity.price)
            self.escrow.credit(caller, amount)
            settlement = Settlement(position=position, exit_price=commodity.price, amount=amount)

            events_repo.log_event(
                self.conn,
                "TRADE_CLOSE",
                caller,
                trader=caller,
                amount=amount,
                commodity_id=position.commodity_id,
                position_id=position_id,
                message=f"{position.quantity} @ {commodity.price} (entry {position.entry_price})",
            )
            trades_repo.record_trade(
                self.conn,
                caller,
                position_id,
                position.commodity_id,
                "CLOSE",
                position.quantity,
                commodity.price,
                amount,
                position.entry_price,
                realized_pnl=settlement.realized_pnl,
            )

        logger.info(
            "Closed position %s for %s: credited %s (realized P&L %s)",
            position_id,
            caller,
            amount,
            settlement.realized_pnl,
        )
        return settlement

    def get_position(self, trader: str, position_id: int) -> Position:
        with self._lock:
            return self.positions.get(trader, position_id)

    def list_positions(self, trader: str | None = None) -> list[Position]:
        with self._lock:
            return self.positions.list(trader)

    # ----- History / audit -----

    def get_events(self, limit: int = 200, trader: str | None = None) -> pd.DataFrame:
        with self._lock:
            return events_repo.get_events(self.conn, limit=limit, trader=trader)

    def get_trades(self, limit: int = 500, trader: str | None = None) -> pd.DataFrame:
        with self._lock:
            return trades_repo.get_trades(self.conn, limit=limit, trader=trader)

    def get_realized_pnl(self, trader: str) -> dict | None:
        with self._lock:
            return trades_repo.get_realized_pnl_summary(self.conn, trader)

    def reconcile(self) -> ReconciliationReport:
        with self._lock:
            return reconcile(self.conn)
