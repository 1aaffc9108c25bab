import pytest

from escrowtrader.broker.paper_transfer import PaperTransferRail
from escrowtrader.db.connection import connect
from escrowtrader.trading.engine import TradeEngine

ADMIN = "admin"
CUSTODIAN = "escrow-custodian"
OPENED_AT = 1_700_000_000


@pytest.fixture
def rail():
    return PaperTransferRail(default_balance=0, wallets={"alice": 100_000, "bob": 100_000})


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "ledger.db")


@pytest.fixture
def bare_engine(db_path, rail):
    """Engine whose market has not been initialized."""
    engine = TradeEngine(connect(db_path), rail, CUSTODIAN, min_trade_quantity=10, clock=lambda: OPENED_AT)
    yield engine
    engine.close()


@pytest.fixture
def engine(bare_engine):
    bare_engine.initialize(ADMIN)
    return bare_engine
