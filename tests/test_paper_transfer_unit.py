from escrowtrader.broker.paper_transfer import PaperTransferRail


def test_transfer_moves_full_amount():
    rail = PaperTransferRail(wallets={"alice": 100})
    assert rail.transfer("alice", "vault", 60) is True
    assert rail.balance_of("alice") == 40
    assert rail.balance_of("vault") == 60


def test_transfer_is_all_or_nothing():
    rail = PaperTransferRail(wallets={"alice": 100})
    assert rail.transfer("alice", "vault", 101) is False
    assert rail.balance_of("alice") == 100
    assert rail.balance_of("vault") == 0


def test_transfer_rejects_non_positive_and_self_transfers():
    rail = PaperTransferRail(default_balance=50)
    assert rail.transfer("alice", "vault", 0) is False
    assert rail.transfer("alice", "vault", -5) is False
    assert rail.transfer("alice", "alice", 10) is False
    assert rail.balance_of("alice") == 50


def test_unknown_wallets_start_at_default_balance():
    rail = PaperTransferRail(default_balance=1000)
    assert rail.balance_of("stranger") == 1000
    rail.fund("stranger", 5)
    assert rail.balance_of("stranger") == 1005


def test_offline_rail_rejects_everything():
    rail = PaperTransferRail(wallets={"alice": 100})
    rail.offline = True
    assert rail.transfer("alice", "vault", 1) is False
    assert rail.balance_of("alice") == 100
