from __future__ import annotations

import sqlite3

from escrowtrader.domain.models import MarketState


def get_market_state(conn: sqlite3.Connection) -> MarketState | None:
    cur = conn.execute(
        """
        SELECT administrator, oracle_address, trading_enabled, min_trade_quantity, initialized_at
        FROM market_state WHERE id = 1
        """
    )
    row = cur.fetchone()
    if not row:
        return None
    return MarketState(
        administrator=row[0],
        oracle_address=row[1],
        trading_enabled=bool(row[2]),
        min_trade_quantity=int(row[3]),
        initialized_at=int(row[4]),
    )


def insert_market_state(conn: sqlite3.Connection, state: MarketState) -> None:
    conn.execute(
        """
        INSERT INTO market_state (id, administrator, oracle_address, trading_enabled, min_trade_quantity, initialized_at)
        VALUES (1, ?, ?, ?, ?, ?)
        """,
        (
            state.administrator,
            state.oracle_address,
            int(state.trading_enabled),
            int(state.min_trade_quantity),
            int(state.initialized_at),
        ),
    )


def set_trading_enabled(conn: sqlite3.Connection, enabled: bool) -> None:
    conn.execute("UPDATE market_state SET trading_enabled = ? WHERE id = 1", (int(enabled),))


def set_oracle_address(conn: sqlite3.Connection, address: str) -> None:
    conn.execute("UPDATE market_state SET oracle_address = ? WHERE id = 1", (address,))


def set_min_trade_quantity(conn: sqlite3.Connection, quantity: int) -> None:
    conn.execute("UPDATE market_state SET min_trade_quantity = ? WHERE id = 1", (int(quantity),))
