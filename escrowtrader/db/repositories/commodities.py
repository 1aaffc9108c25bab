from __future__ import annotations

import sqlite3

from escrowtrader.domain.models import Commodity


def get_commodity(conn: sqlite3.Connection, commodity_id: int) -> Commodity | None:
    cur = conn.execute(
        "SELECT commodity_id, available_quantity, price, owner FROM commodities WHERE commodity_id = ?",
        (int(commodity_id),),
    )
    row = cur.fetchone()
    if not row:
        return None
    return Commodity(commodity_id=int(row[0]), available_quantity=int(row[1]), price=int(row[2]), owner=row[3])


def upsert_commodity(conn: sqlite3.Connection, commodity: Commodity) -> None:
    conn.execute(
        """
        INSERT INTO commodities (commodity_id, available_quantity, price, owner)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(commodity_id) DO UPDATE SET
            available_quantity=excluded.available_quantity,
            price=excluded.price,
            owner=excluded.owner
        """,
        (
            int(commodity.commodity_id),
            int(commodity.available_quantity),
            int(commodity.price),
            commodity.owner,
        ),
    )


def list_commodities(conn: sqlite3.Connection) -> list[Commodity]:
    cur = conn.execute("SELECT commodity_id, available_quantity, price, owner FROM commodities ORDER BY commodity_id")
    return [
        Commodity(commodity_id=int(r[0]), available_quantity=int(r[1]), price=int(r[2]), owner=r[3])
        for r in cur.fetchall()
    ]
