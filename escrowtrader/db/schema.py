from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)


def init_db(conn: sqlite3.Connection) -> None:
    """Initialise the ledger schema (idempotent)."""
    cursor = conn.cursor()

    # Singleton row; absent until the market is initialized.
    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS market_state (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            administrator TEXT NOT NULL,
            oracle_address TEXT NOT NULL,
            trading_enabled INTEGER NOT NULL,
            min_trade_quantity INTEGER NOT NULL CHECK (min_trade_quantity >= 0),
            initialized_at INTEGER NOT NULL
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS commodities (
            commodity_id INTEGER PRIMARY KEY,
            available_quantity INTEGER NOT NULL CHECK (available_quantity >= 0),
            price INTEGER NOT NULL CHECK (price > 0),
            owner TEXT NOT NULL
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS escrow_accounts (
            owner TEXT PRIMARY KEY,
            balance INTEGER NOT NULL CHECK (balance >= 0)
        )
        """
    )

    # No foreign key to commodities: settlement must still find the position
    # and report a missing commodity explicitly.
    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS positions (
            trader TEXT NOT NULL,
            position_id INTEGER NOT NULL,
            commodity_id INTEGER NOT NULL,
            quantity INTEGER NOT NULL CHECK (quantity >= 0),
            entry_price INTEGER NOT NULL CHECK (entry_price > 0),
            opened_at INTEGER NOT NULL,
            PRIMARY KEY (trader, position_id)
        )
        """
    )

    # Append-only journal of every state change, written in the same
    # transaction as the change itself.
    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS ledger_events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
            kind TEXT NOT NULL,
            actor TEXT NOT NULL,
            trader TEXT,
            amount INTEGER,
            commodity_id INTEGER,
            position_id INTEGER,
            message TEXT
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS trades (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
            trader TEXT NOT NULL,
            position_id INTEGER NOT NULL,
            commodity_id INTEGER NOT NULL,
            action TEXT NOT NULL,  -- OPEN, CLOSE
            quantity INTEGER NOT NULL,
            price INTEGER NOT NULL,
            amount INTEGER NOT NULL,
            entry_price INTEGER NOT NULL,
            realized_pnl INTEGER
        )
        """
    )

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_ledger_events_trader ON ledger_events (trader, id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_trades_trader ON trades (trader, id)")

    cursor.close()
    logger.debug("Ledger schema ready")
