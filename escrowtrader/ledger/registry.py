from __future__ import annotations

import logging
import sqlite3

from escrowtrader.db.repositories import commodities as commodity_repo
from escrowtrader.db.repositories.events import log_event
from escrowtrader.domain.errors import NotFound
from escrowtrader.domain.models import Commodity
from escrowtrader.ledger.access import verify_administrator
from escrowtrader.ledger.market import MarketControl
from escrowtrader.trading.validation import validate_trade

logger = logging.getLogger(__name__)


class CommodityRegistry:
    def __init__(self, conn: sqlite3.Connection, market: MarketControl):
        self.conn = conn
        self.market = market

    def find(self, commodity_id: int) -> Commodity | None:
        return commodity_repo.get_commodity(self.conn, commodity_id)

    def get(self, commodity_id: int) -> Commodity:
        commodity = self.find(commodity_id)
        if commodity is None:
            raise NotFound(f"commodity {commodity_id} is not registered")
        return commodity

    def all(self) -> list[Commodity]:
        return commodity_repo.list_commodities(self.conn)

    def register(self, caller: str, commodity_id: int, quantity: int, price: int) -> Commodity:
        """Insert or overwrite a commodity. Administrator only; the caller becomes its owner."""
        state = self.market.state()
        verify_administrator(state, caller)
        validate_trade(quantity, price, state.min_trade_quantity)

        commodity = Commodity(commodity_id=commodity_id, available_quantity=quantity, price=price, owner=caller)
        previous = self.find(commodity_id)
        commodity_repo.upsert_commodity(self.conn, commodity)
        log_event(
            self.conn,
            "REGISTER_COMMODITY",
            caller,
            commodity_id=commodity_id,
            message=f"quantity={quantity} price={price}",
        )
        if previous is not None and previous.price != price:
            logger.info("Commodity %s repriced %s -> %s", commodity_id, previous.price, price)
        return commodity
