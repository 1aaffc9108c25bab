from __future__ import annotations

import sqlite3

from escrowtrader.db.repositories import positions as position_repo
from escrowtrader.domain.errors import NotFound, PositionAlreadyOpen, PositionNotFound
from escrowtrader.domain.models import Position


class PositionBook:
    """Open positions keyed by (trader, position id)."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def find(self, trader: str, position_id: int) -> Position | None:
        return position_repo.get_position(self.conn, trader, position_id)

    def get(self, trader: str, position_id: int) -> Position:
        position = self.find(trader, position_id)
        if position is None:
            raise NotFound(f"no open position {position_id} for {trader!r}")
        return position

    def ensure_free(self, trader: str, position_id: int) -> None:
        if self.find(trader, position_id) is not None:
            raise PositionAlreadyOpen(f"position {position_id} is already open for {trader!r}")

    def open(self, position: Position) -> None:
        self.ensure_free(position.trader, position.position_id)
        position_repo.insert_position(self.conn, position)

    def take(self, trader: str, position_id: int) -> Position:
        """Remove and return an open position."""
        position = self.find(trader, position_id)
        if position is None:
            raise PositionNotFound(f"no open position {position_id} for {trader!r}")
        position_repo.delete_position(self.conn, trader, position_id)
        return position

    def list(self, trader: str | None = None) -> list[Position]:
        return position_repo.list_positions(self.conn, trader)
