from __future__ import annotations

import logging
import sqlite3
from typing import Callable

from escrowtrader.db.repositories import market_state as market_repo
from escrowtrader.db.repositories.events import log_event
from escrowtrader.domain.errors import AlreadyInitialized, InvalidTradeQuantity, NotInitialized
from escrowtrader.domain.models import MAX_AMOUNT, MarketState
from escrowtrader.ledger.access import verify_administrator

logger = logging.getLogger(__name__)


class MarketControl:
    """
    Administrator, oracle address, trading switch and minimum trade quantity.

    Callers hold the engine lock and an open write transaction for mutations.
    """

    def __init__(self, conn: sqlite3.Connection, clock: Callable[[], int], default_min_trade_quantity: int):
        self.conn = conn
        self.clock = clock
        self.default_min_trade_quantity = int(default_min_trade_quantity)

    def peek(self) -> MarketState | None:
        return market_repo.get_market_state(self.conn)

    def state(self) -> MarketState:
        state = self.peek()
        if state is None:
            raise NotInitialized("market has not been initialized")
        return state

    def initialize(self, administrator: str) -> MarketState:
        if self.peek() is not None:
            raise AlreadyInitialized("market is already initialized")
        state = MarketState(
            administrator=administrator,
            oracle_address=administrator,
            trading_enabled=True,
            min_trade_quantity=self.default_min_trade_quantity,
            initialized_at=self.clock(),
        )
        market_repo.insert_market_state(self.conn, state)
        log_event(self.conn, "INITIALIZE", administrator, message=f"administrator={administrator}")
        logger.info("Market initialized (administrator=%s, min_trade_quantity=%s)", administrator, state.min_trade_quantity)
        return state

    def toggle_trading(self, caller: str) -> bool:
        state = self.state()
        verify_administrator(state, caller)
        enabled = not state.trading_enabled
        market_repo.set_trading_enabled(self.conn, enabled)
        log_event(self.conn, "TOGGLE_TRADING", caller, message=f"trading_enabled={enabled}")
        logger.info("Trading %s by %s", "enabled" if enabled else "disabled", caller)
        return enabled

    def update_oracle_address(self, caller: str, address: str) -> None:
        verify_administrator(self.state(), caller)
        market_repo.set_oracle_address(self.conn, address)
        log_event(self.conn, "UPDATE_ORACLE", caller, message=f"oracle_address={address}")

    def set_min_trade_quantity(self, caller: str, quantity: int) -> None:
        verify_administrator(self.state(), caller)
        if quantity < 0 or quantity > MAX_AMOUNT:
            raise InvalidTradeQuantity(f"min_trade_quantity must be between 0 and {MAX_AMOUNT}")
        market_repo.set_min_trade_quantity(self.conn, quantity)
        log_event(self.conn, "SET_MIN_TRADE_QUANTITY", caller, message=f"min_trade_quantity={quantity}")
