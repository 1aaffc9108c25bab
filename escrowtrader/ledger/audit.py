from __future__ import annotations

import sqlite3
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from escrowtrader.db.repositories import escrow as escrow_repo
from escrowtrader.db.repositories import positions as position_repo
from escrowtrader.db.repositories.events import get_escrow_flows

_FLOW_SIGN = {"DEPOSIT": 1, "WITHDRAW": -1, "TRADE_OPEN": -1, "TRADE_CLOSE": 1}


@dataclass(frozen=True)
class ReconciliationReport:
    accounts_checked: int
    positions_checked: int
    discrepancies: list[str] = field(default_factory=list)
    open_collateral: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.discrepancies

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "accounts_checked": self.accounts_checked,
            "positions_checked": self.positions_checked,
            "discrepancies": list(self.discrepancies),
            "open_collateral": dict(self.open_collateral),
        }


def reconcile(conn: sqlite3.Connection) -> ReconciliationReport:
    """
    Replay the ledger journal and compare it with stored state.

    Every stored balance must equal deposits - withdrawals - opened collateral
    + settlements for that trader, and the set of open positions must equal
    the set of journaled opens that were never closed.
    """
    expected: dict[str, int] = defaultdict(int)
    opened: dict[tuple[str, int], int] = {}
    for kind, trader, amount, position_id in get_escrow_flows(conn):
        expected[trader] += _FLOW_SIGN[kind] * amount
        if kind == "TRADE_OPEN":
            opened[(trader, int(position_id))] = amount
        elif kind == "TRADE_CLOSE":
            opened.pop((trader, int(position_id)), None)

    balances = escrow_repo.get_all_balances(conn)
    discrepancies: list[str] = []
    for trader in sorted(set(balances) | set(expected)):
        stored = balances.get(trader)
        journaled = expected.get(trader, 0)
        if stored is None:
            discrepancies.append(f"{trader}: journal implies balance {journaled} but no escrow account exists")
            continue
        if stored < 0:
            discrepancies.append(f"{trader}: negative balance {stored}")
        if stored != journaled:
            discrepancies.append(f"{trader}: stored balance {stored} != journaled balance {journaled}")

    positions = position_repo.list_positions(conn)
    open_keys = set(opened)
    stored_keys = {(p.trader, p.position_id) for p in positions}
    open_collateral: dict[str, int] = defaultdict(int)
    for p in positions:
        open_collateral[p.trader] += p.collateral
        journaled = opened.get((p.trader, p.position_id))
        if journaled is not None and journaled != p.collateral:
            discrepancies.append(
                f"{p.trader}: position {p.position_id} holds collateral {p.collateral} but TRADE_OPEN debited {journaled}"
            )
    for trader, position_id in sorted(stored_keys - open_keys):
        discrepancies.append(f"{trader}: position {position_id} is open but has no journaled TRADE_OPEN")
    for trader, position_id in sorted(open_keys - stored_keys):
        discrepancies.append(f"{trader}: position {position_id} was opened but is neither open nor closed")

    return ReconciliationReport(
        accounts_checked=len(balances),
        positions_checked=len(positions),
        discrepancies=discrepancies,
        open_collateral=dict(open_collateral),
    )
