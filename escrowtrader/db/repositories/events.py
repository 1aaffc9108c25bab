from __future__ import annotations

import sqlite3

import pandas as pd

from escrowtrader.db.connection import safe_db_read


def log_event(
    conn: sqlite3.Connection,
    kind: str,
    actor: str,
    *,
    trader: str | None = None,
    amount: int | None = None,
    commodity_id: int | None = None,
    position_id: int | None = None,
    message: str | None = None,
) -> None:
    conn.execute(
        """
        INSERT INTO ledger_events (kind, actor, trader, amount, commodity_id, position_id, message)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (kind, actor, trader, amount, commodity_id, position_id, message),
    )


def get_escrow_flows(conn: sqlite3.Connection) -> list[tuple[str, str, int, int | None]]:
    """(kind, trader, amount, position_id) for every journal entry that moved escrow, oldest first."""
    cur = conn.execute(
        """
        SELECT kind, trader, amount, position_id
        FROM ledger_events
        WHERE kind IN ('DEPOSIT', 'WITHDRAW', 'TRADE_OPEN', 'TRADE_CLOSE')
        ORDER BY id ASC
        """
    )
    return [(r[0], r[1], int(r[2]), r[3]) for r in cur.fetchall()]


@safe_db_read(default_factory=pd.DataFrame)
def get_events(conn: sqlite3.Connection, limit: int = 200, trader: str | None = None) -> pd.DataFrame:
    if trader is None:
        return pd.read_sql_query(
            "SELECT * FROM ledger_events ORDER BY id DESC LIMIT ?",
            conn,
            params=(int(limit),),
        )
    return pd.read_sql_query(
        "SELECT * FROM ledger_events WHERE trader = ? ORDER BY id DESC LIMIT ?",
        conn,
        params=(trader, int(limit)),
    )
