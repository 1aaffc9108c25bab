from __future__ import annotations

import sqlite3

import pandas as pd

from escrowtrader.db.connection import safe_db_read


def record_trade(
    conn: sqlite3.Connection,
    trader: str,
    position_id: int,
    commodity_id: int,
    action: str,
    quantity: int,
    price: int,
    amount: int,
    entry_price: int,
    realized_pnl: int | None = None,
) -> None:
    conn.execute(
        """
        INSERT INTO trades (trader, position_id, commodity_id, action, quantity, price, amount, entry_price, realized_pnl)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (trader, int(position_id), int(commodity_id), action, int(quantity), int(price), int(amount), int(entry_price), realized_pnl),
    )


@safe_db_read(default_factory=pd.DataFrame)
def get_trades(conn: sqlite3.Connection, limit: int = 500, trader: str | None = None) -> pd.DataFrame:
    if trader is None:
        return pd.read_sql_query("SELECT * FROM trades ORDER BY id DESC LIMIT ?", conn, params=(int(limit),))
    return pd.read_sql_query(
        "SELECT * FROM trades WHERE trader = ? ORDER BY id DESC LIMIT ?",
        conn,
        params=(trader, int(limit)),
    )


@safe_db_read(default_factory=lambda: None)
def get_realized_pnl_summary(conn: sqlite3.Connection, trader: str) -> dict | None:
    """Closed-trade count and net realized P&L for one trader."""
    df = pd.read_sql_query(
        "SELECT realized_pnl FROM trades WHERE trader = ? AND action = 'CLOSE'",
        conn,
        params=(trader,),
    )
    if df.empty:
        return {"trader": trader, "closed_trades": 0, "realized_pnl": 0}
    return {
        "trader": trader,
        "closed_trades": int(len(df)),
        "realized_pnl": int(df["realized_pnl"].sum()),
    }
