import pytest

from escrowtrader.domain.errors import (
    AlreadyInitialized,
    InvalidCommodityPrice,
    InvalidTradeQuantity,
    NotFound,
    NotInitialized,
    Unauthorized,
)
from escrowtrader.domain.models import MarketState
from escrowtrader.ledger.access import is_administrator, verify_administrator

from conftest import ADMIN, OPENED_AT


def test_initialize_sets_administrator_and_oracle(bare_engine):
    state = bare_engine.initialize("deployer")
    assert state == MarketState(
        administrator="deployer",
        oracle_address="deployer",
        trading_enabled=True,
        min_trade_quantity=10,
        initialized_at=OPENED_AT,
    )
    assert bare_engine.get_market_state() == state


def test_initialize_runs_exactly_once(engine):
    with pytest.raises(AlreadyInitialized):
        engine.initialize("mallory")
    assert engine.get_market_state().administrator == ADMIN


def test_market_state_before_initialize_fails(bare_engine):
    with pytest.raises(NotInitialized):
        bare_engine.get_market_state()


def test_verify_administrator():
    state = MarketState("admin", "admin", True, 10, 0)
    verify_administrator(state, "admin")
    assert is_administrator(state, "admin")
    assert not is_administrator(state, "alice")
    with pytest.raises(Unauthorized):
        verify_administrator(state, "alice")


def test_toggle_trading_flips_flag(engine):
    assert engine.toggle_trading(ADMIN) is False
    assert engine.get_market_state().trading_enabled is False
    assert engine.toggle_trading(ADMIN) is True
    assert engine.get_market_state().trading_enabled is True


def test_toggle_trading_requires_administrator(engine):
    with pytest.raises(Unauthorized):
        engine.toggle_trading("alice")
    assert engine.get_market_state().trading_enabled is True


def test_update_price_oracle(engine):
    engine.update_price_oracle(ADMIN, "oracle-1")
    assert engine.get_market_state().oracle_address == "oracle-1"
    with pytest.raises(Unauthorized):
        engine.update_price_oracle("alice", "oracle-2")
    assert engine.get_market_state().oracle_address == "oracle-1"


def test_set_min_trade_quantity(engine):
    engine.set_min_trade_quantity(ADMIN, 50)
    assert engine.get_market_state().min_trade_quantity == 50
    with pytest.raises(Unauthorized):
        engine.set_min_trade_quantity("alice", 1)
    with pytest.raises(InvalidTradeQuantity):
        engine.set_min_trade_quantity(ADMIN, -1)
    assert engine.get_market_state().min_trade_quantity == 50


def test_register_commodity(engine):
    commodity = engine.register_commodity(ADMIN, 1, 500, 10)
    assert commodity.owner == ADMIN
    assert engine.get_commodity(1) == commodity
    assert [c.commodity_id for c in engine.list_commodities()] == [1]


def test_register_commodity_overwrites(engine):
    engine.register_commodity(ADMIN, 1, 500, 10)
    engine.register_commodity(ADMIN, 1, 300, 12)
    commodity = engine.get_commodity(1)
    assert (commodity.available_quantity, commodity.price) == (300, 12)


def test_register_commodity_requires_administrator(engine):
    with pytest.raises(Unauthorized):
        engine.register_commodity("alice", 1, 500, 10)
    with pytest.raises(NotFound):
        engine.get_commodity(1)


def test_register_commodity_validates_quantity_then_price(engine):
    with pytest.raises(InvalidTradeQuantity):
        engine.register_commodity(ADMIN, 1, 9, 10)
    with pytest.raises(InvalidCommodityPrice):
        engine.register_commodity(ADMIN, 1, 500, 0)
    # Both wrong: quantity is reported.
    with pytest.raises(InvalidTradeQuantity):
        engine.register_commodity(ADMIN, 1, 0, 0)


def test_register_commodity_uses_current_min_quantity(engine):
    engine.set_min_trade_quantity(ADMIN, 100)
    with pytest.raises(InvalidTradeQuantity):
        engine.register_commodity(ADMIN, 1, 99, 10)
    engine.register_commodity(ADMIN, 1, 100, 10)


def test_market_changes_are_journaled(engine):
    engine.toggle_trading(ADMIN)
    engine.update_price_oracle(ADMIN, "oracle-1")
    engine.register_commodity(ADMIN, 3, 100, 4)
    kinds = list(engine.get_events()["kind"])
    assert kinds == ["REGISTER_COMMODITY", "UPDATE_ORACLE", "TOGGLE_TRADING", "INITIALIZE"]


def test_rejected_operations_are_not_journaled(engine):
    with pytest.raises(Unauthorized):
        engine.toggle_trading("alice")
    assert list(engine.get_events()["kind"]) == ["INITIALIZE"]


def test_is_initialized(bare_engine):
    assert bare_engine.is_initialized() is False
    bare_engine.initialize(ADMIN)
    assert bare_engine.is_initialized() is True
