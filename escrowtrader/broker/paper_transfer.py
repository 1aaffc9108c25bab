from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class PaperTransferRail:
    """
    In-process funds rail for local runs and tests.

    Wallets that were never funded explicitly start at `default_balance`.
    A transfer fails (returns False, moves nothing) when the amount is not a
    positive integer, when sender and recipient are the same wallet, or when
    the sender's wallet cannot cover it.
    """

    def __init__(self, default_balance: int = 0, wallets: dict[str, int] | None = None):
        self.default_balance = int(default_balance)
        self._wallets: dict[str, int] = {k: int(v) for k, v in (wallets or {}).items()}
        self._lock = threading.Lock()
        # Set to make every transfer fail (outage simulation).
        self.offline = False

    def fund(self, wallet: str, amount: int) -> None:
        with self._lock:
            self._wallets[wallet] = self._balance(wallet) + int(amount)

    def balance_of(self, wallet: str) -> int:
        with self._lock:
            return self._balance(wallet)

    def _balance(self, wallet: str) -> int:
        return self._wallets.get(wallet, self.default_balance)

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        if self.offline:
            logger.warning("Transfer rail offline; rejecting %s -> %s (%s)", sender, recipient, amount)
            return False
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            logger.warning("Rejected transfer with non-positive amount: %r", amount)
            return False
        if sender == recipient:
            return False

        with self._lock:
            available = self._balance(sender)
            if available < amount:
                logger.info("Transfer %s -> %s rejected: wallet holds %s, needs %s", sender, recipient, available, amount)
                return False
            self._wallets[sender] = available - amount
            self._wallets[recipient] = self._balance(recipient) + amount
        logger.debug("Transferred %s from %s to %s", amount, sender, recipient)
        return True
