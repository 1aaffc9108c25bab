from __future__ import annotations

from escrowtrader.domain.errors import Unauthorized
from escrowtrader.domain.models import MarketState


def is_administrator(state: MarketState, caller: str) -> bool:
    return caller == state.administrator


def verify_administrator(state: MarketState, caller: str) -> None:
    """Guard for privileged operations. No side effects."""
    if not is_administrator(state, caller):
        raise Unauthorized(f"{caller!r} is not the market administrator")
