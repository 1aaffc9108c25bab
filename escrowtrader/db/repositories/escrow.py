from __future__ import annotations

import sqlite3


def get_balance(conn: sqlite3.Connection, owner: str) -> int | None:
    cur = conn.execute("SELECT balance FROM escrow_accounts WHERE owner = ?", (owner,))
    row = cur.fetchone()
    return int(row[0]) if row else None


def set_balance(conn: sqlite3.Connection, owner: str, balance: int) -> None:
    conn.execute(
        """
        INSERT INTO escrow_accounts (owner, balance)
        VALUES (?, ?)
        ON CONFLICT(owner) DO UPDATE SET balance=excluded.balance
        """,
        (owner, int(balance)),
    )


def get_all_balances(conn: sqlite3.Connection) -> dict[str, int]:
    cur = conn.execute("SELECT owner, balance FROM escrow_accounts")
    return {r[0]: int(r[1]) for r in cur.fetchall()}
