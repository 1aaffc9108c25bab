from __future__ import annotations

from typing import Protocol


class FundsTransferPort(Protocol):
    """
    External funds rail. A transfer is atomic: it either moves the full amount
    and returns True, or moves nothing and returns False.
    """

    def transfer(self, sender: str, recipient: str, amount: int) -> bool: ...
