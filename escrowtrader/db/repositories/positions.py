from __future__ import annotations

import sqlite3

from escrowtrader.domain.models import Position

_COLUMNS = "trader, position_id, commodity_id, quantity, entry_price, opened_at"


def _row_to_position(row) -> Position:
    return Position(
        trader=row[0],
        position_id=int(row[1]),
        commodity_id=int(row[2]),
        quantity=int(row[3]),
        entry_price=int(row[4]),
        opened_at=int(row[5]),
    )


def get_position(conn: sqlite3.Connection, trader: str, position_id: int) -> Position | None:
    cur = conn.execute(
        f"SELECT {_COLUMNS} FROM positions WHERE trader = ? AND position_id = ?",
        (trader, int(position_id)),
    )
    row = cur.fetchone()
    return _row_to_position(row) if row else None


def insert_position(conn: sqlite3.Connection, position: Position) -> None:
    # Plain INSERT: the composite primary key rejects a second open position at the same key.
    conn.execute(
        f"INSERT INTO positions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
        (
            position.trader,
            int(position.position_id),
            int(position.commodity_id),
            int(position.quantity),
            int(position.entry_price),
            int(position.opened_at),
        ),
    )


def delete_position(conn: sqlite3.Connection, trader: str, position_id: int) -> None:
    conn.execute("DELETE FROM positions WHERE trader = ? AND position_id = ?", (trader, int(position_id)))


def list_positions(conn: sqlite3.Connection, trader: str | None = None) -> list[Position]:
    if trader is None:
        cur = conn.execute(f"SELECT {_COLUMNS} FROM positions ORDER BY trader, position_id")
    else:
        cur = conn.execute(
            f"SELECT {_COLUMNS} FROM positions WHERE trader = ? ORDER BY position_id",
            (trader,),
        )
    return [_row_to_position(r) for r in cur.fetchall()]
