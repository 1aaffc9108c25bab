from __future__ import annotations

from escrowtrader.domain.errors import ArithmeticOverflow, InvalidCommodityPrice, InvalidTradeQuantity
from escrowtrader.domain.models import MAX_AMOUNT


def validate_trade(quantity: int, price: int, min_trade_quantity: int) -> None:
    """
    Shared by commodity registration and trade entry.

    Quantity is checked before price, so a request that is wrong on both
    counts reports the quantity.
    """
    if quantity < 0 or quantity < min_trade_quantity:
        raise InvalidTradeQuantity(f"quantity {quantity} is below the minimum of {min_trade_quantity}")
    if price <= 0:
        raise InvalidCommodityPrice(f"price must be > 0; got {price}")
    if quantity > MAX_AMOUNT or price > MAX_AMOUNT:
        raise ArithmeticOverflow("quantity or price exceeds the supported range")


def trade_cost(quantity: int, price: int) -> int:
    cost = quantity * price
    if cost > MAX_AMOUNT:
        raise ArithmeticOverflow(f"trade value {quantity} x {price} exceeds the supported range")
    return cost
