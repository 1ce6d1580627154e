import threading

import pytest

from prize_wheel.enforcer import PlayCheck, UniquenessEnforcer
from prize_wheel.errors import AlreadyPlayed, AuthCheckFailed, DuplicateRecord, StoreUnavailable, WriteFailed
from prize_wheel.record_store import PlayRecord


@pytest.fixture
def enforcer(record_store):
    return UniquenessEnforcer(record_store)


def _unreachable(*args, **kwargs):
    raise StoreUnavailable("network down")


def test_new_name_may_play(enforcer):
    assert enforcer.may_play('Alice') is PlayCheck.ALLOWED


def test_played_name_is_refused_trimmed(enforcer, record_store):
    record_store.insert(PlayRecord(user='Alice', result='Mug'))
    assert enforcer.may_play('Alice') is PlayCheck.ALREADY_PLAYED
    assert enforcer.may_play('  Alice ') is PlayCheck.ALREADY_PLAYED
    assert enforcer.may_play('Alicia') is PlayCheck.ALLOWED


def test_store_failure_is_a_connection_error(enforcer, record_store, monkeypatch):
    monkeypatch.setattr(record_store, 'exists', _unreachable)
    assert enforcer.may_play('Alice') is PlayCheck.CONNECTION_ERROR
    with pytest.raises(AuthCheckFailed):
        enforcer.claim('Alice')


def test_plain_check_then_insert_allows_a_double_play(enforcer, record_store):
    # Both sessions check before either write lands
    assert enforcer.may_play('Bob') is PlayCheck.ALLOWED
    assert enforcer.may_play('Bob') is PlayCheck.ALLOWED
    record_store.insert(PlayRecord(user='Bob', result='Mug'))
    record_store.insert(PlayRecord(user='Bob', result='Pen'))
    assert len(record_store.query('Bob')) == 2


def test_claim_and_conditional_insert_close_the_race(enforcer, record_store):
    assert enforcer.may_play('Bob') is PlayCheck.ALLOWED
    assert enforcer.may_play('Bob') is PlayCheck.ALLOWED

    enforcer.claim('Bob')
    with pytest.raises(AlreadyPlayed):
        enforcer.claim(' Bob ')

    enforcer.commit(PlayRecord(user='Bob', result='Mug'))
    assert not enforcer.is_claimed('Bob')
    with pytest.raises(AlreadyPlayed):
        enforcer.claim('Bob')
    with pytest.raises(DuplicateRecord):
        record_store.insert_if_absent(PlayRecord(user='Bob', result='Pen'))
    assert len(record_store.query('Bob')) == 1


def test_concurrent_claims_only_one_wins(enforcer):
    barrier = threading.Barrier(8)
    wins, losses = [], []

    def attempt():
        barrier.wait()
        try:
            enforcer.claim('Carol')
            wins.append(1)
        except AlreadyPlayed:
            losses.append(1)

    threads = [threading.Thread(target=attempt) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(wins) == 1
    assert len(losses) == 7


def test_failed_write_releases_the_claim(enforcer, record_store, monkeypatch):
    enforcer.claim('Dave')
    monkeypatch.setattr(record_store, 'insert_if_absent', _unreachable)
    with pytest.raises(WriteFailed):
        enforcer.commit(PlayRecord(user='Dave', result='Mug'))
    assert not enforcer.is_claimed('Dave')


def test_release_allows_a_new_claim(enforcer):
    enforcer.claim('Eve')
    enforcer.release('Eve')
    enforcer.claim('Eve')
    assert enforcer.is_claimed('Eve')
