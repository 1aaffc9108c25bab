"""
Escrow ledger: custodial balances held on behalf of traders.

Deposits and withdrawals move real funds over the external transfer rail
and own their database transaction. `credit` and `debit` only touch the
stored balance and run inside the caller's transaction (trade open/close).
"""

from __future__ import annotations

import logging
import sqlite3

from escrowtrader.db.connection import write_transaction
from escrowtrader.db.repositories import escrow as escrow_repo
from escrowtrader.db.repositories.events import log_event
from escrowtrader.domain.errors import (
    ArithmeticOverflow,
    EscrowTransactionFailed,
    InsufficientEscrowBalance,
    NotFound,
)
from escrowtrader.domain.models import MAX_AMOUNT, EscrowAccount
from escrowtrader.ports.transfer import FundsTransferPort

logger = logging.getLogger(__name__)


class EscrowLedger:
    def __init__(self, conn: sqlite3.Connection, rail: FundsTransferPort, custodian: str):
        self.conn = conn
        self.rail = rail
        self.custodian = custodian

    def find_balance(self, trader: str) -> int | None:
        return escrow_repo.get_balance(self.conn, trader)

    def balance(self, trader: str) -> int:
        balance = self.find_balance(trader)
        if balance is None:
            raise NotFound(f"no escrow account for {trader!r}")
        return balance

    def account(self, trader: str) -> EscrowAccount:
        return EscrowAccount(owner=trader, balance=self.balance(trader))

    def _balance_after_credit(self, trader: str, amount: int) -> int:
        if amount < 0:
            raise ValueError(f"credit amount must be >= 0; got {amount}")
        new_balance = (self.find_balance(trader) or 0) + amount
        if new_balance > MAX_AMOUNT:
            raise ArithmeticOverflow(f"escrow balance of {trader!r} would exceed the supported range")
        return new_balance

    def credit(self, trader: str, amount: int) -> int:
        new_balance = self._balance_after_credit(trader, amount)
        escrow_repo.set_balance(self.conn, trader, new_balance)
        return new_balance

    def debit(self, trader: str, amount: int) -> int:
        if amount < 0:
            raise ValueError(f"debit amount must be >= 0; got {amount}")
        current = self.find_balance(trader)
        if current is None or current < amount:
            raise InsufficientEscrowBalance(f"escrow balance of {trader!r} is {current or 0}, needs {amount}")
        escrow_repo.set_balance(self.conn, trader, current - amount)
        return current - amount

    def deposit(self, trader: str, amount: int) -> int:
        """
        Pull `amount` from the trader's wallet into custody and credit escrow.

        The transfer runs first. If anything after a successful transfer fails
        (including the commit), the funds are sent back before the error propagates.
        """
        if amount <= 0:
            raise EscrowTransactionFailed(f"deposit amount must be > 0; got {amount}")
        transferred = False
        try:
            with write_transaction(self.conn):
                new_balance = self._balance_after_credit(trader, amount)
                if not self.rail.transfer(trader, self.custodian, amount):
                    raise EscrowTransactionFailed(f"deposit transfer of {amount} from {trader!r} failed")
                transferred = True
                escrow_repo.set_balance(self.conn, trader, new_balance)
                log_event(self.conn, "DEPOSIT", trader, trader=trader, amount=amount)
        except Exception:
            if transferred:
                self._compensate(self.custodian, trader, amount, "deposit")
            raise
        logger.info("Deposit: %s +%s (balance %s)", trader, amount, new_balance)
        return new_balance

    def withdraw(self, trader: str, amount: int) -> int:
        """
        Pay `amount` out of custody to the trader.

        Sufficiency is checked, then the transfer runs, then the balance is
        decremented. A failed transfer leaves the balance untouched.
        """
        if amount <= 0:
            raise EscrowTransactionFailed(f"withdrawal amount must be > 0; got {amount}")
        transferred = False
        try:
            with write_transaction(self.conn):
                current = self.find_balance(trader)
                if current is None or current < amount:
                    raise InsufficientEscrowBalance(
                        f"escrow balance of {trader!r} is {current or 0}, cannot withdraw {amount}"
                    )
                if not self.rail.transfer(self.custodian, trader, amount):
                    raise EscrowTransactionFailed(f"withdrawal transfer of {amount} to {trader!r} failed")
                transferred = True
                escrow_repo.set_balance(self.conn, trader, current - amount)
                log_event(self.conn, "WITHDRAW", trader, trader=trader, amount=amount)
        except Exception:
            if transferred:
                self._compensate(trader, self.custodian, amount, "withdrawal")
            raise
        logger.info("Withdrawal: %s -%s (balance %s)", trader, amount, current - amount)
        return current - amount

    def _compensate(self, sender: str, recipient: str, amount: int, what: str) -> None:
        if self.rail.transfer(sender, recipient, amount):
            logger.warning("Reversed %s transfer of %s (%s -> %s) after local failure", what, amount, sender, recipient)
        else:
            logger.critical(
                "Could not reverse %s transfer of %s (%s -> %s); custody and escrow are out of balance",
                what,
                amount,
                sender,
                recipient,
            )
