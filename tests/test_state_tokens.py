import pytest

from replydesk.security.state_tokens import StateTokenStore


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_tokens_are_single_use():
    store = StateTokenStore()
    token = store.issue("user-1")

    assert store.consume(token, "user-1")
    assert not store.consume(token, "user-1")


def test_tokens_are_random_and_not_stored_in_clear():
    store = StateTokenStore()
    tokens = {store.issue() for _ in range(20)}
    assert len(tokens) == 20
    assert not tokens & set(store._issued)


def test_subject_mismatch_burns_token():
    store = StateTokenStore()
    token = store.issue("user-1")

    assert not store.consume(token, "user-2")
    assert not store.consume(token, "user-1")


def test_unbound_token_accepts_any_subject():
    store = StateTokenStore()
    assert store.consume(store.issue(), "anyone")


def test_expiry_and_sweep():
    clock = FakeClock()
    store = StateTokenStore(ttl_seconds=600, clock=clock)
    expired = store.issue()
    clock.now = 300
    live = store.issue()
    clock.now = 600

    assert store.sweep() == 1
    assert len(store) == 1
    assert not store.consume(expired)
    assert store.consume(live)


def test_unknown_and_empty_tokens():
    store = StateTokenStore()
    assert not store.consume("")
    assert not store.consume("never-issued")


def test_invalid_ttl():
    with pytest.raises(ValueError):
        StateTokenStore(ttl_seconds=0)
