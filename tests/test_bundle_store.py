"""Replacement rules and fork lifecycle of the pending bundle."""

import random

import pytest

from bundle_proxy.engine.bundle_store import BundleState, PendingBundle, UpsertAction
from bundle_proxy.engine.errors import ForkUnavailableError

from dummies import SENDER_A, SENDER_B, DummyForkFactory, make_store, make_tx


def test_resend_same_slot_replaces():
    bundle = PendingBundle()
    a = make_tx(SENDER_A, 0, "a")
    b = make_tx(SENDER_A, 0, "b")
    bundle.upsert(a)
    result = bundle.upsert(b)
    assert result.action is UpsertAction.REPLACED
    assert result.replaced == a
    assert bundle.transactions == [b]


def test_distinct_slots_keep_submission_order():
    bundle = PendingBundle()
    a = make_tx(SENDER_A, 0, "a")
    c = make_tx(SENDER_B, 5, "c")
    d = make_tx(SENDER_A, 1, "d")
    for tx in (a, c, d):
        bundle.upsert(tx)
    assert bundle.transactions == [a, c, d]


def test_replacing_earlier_entry_keeps_position():
    bundle = PendingBundle()
    a = make_tx(SENDER_A, 0, "a")
    c = make_tx(SENDER_B, 5, "c")
    d = make_tx(SENDER_A, 1, "d")
    for tx in (a, c, d):
        bundle.upsert(tx)
    a2 = make_tx(SENDER_A, 0, "a2")
    result = bundle.upsert(a2)
    assert result.index == 0
    assert result.earlier_position is True
    assert bundle.transactions == [a2, c, d]


def test_replacing_last_entry_is_not_flagged():
    bundle = PendingBundle()
    bundle.upsert(make_tx(SENDER_A, 0, "a"))
    result = bundle.upsert(make_tx(SENDER_A, 0, "b"))
    assert result.earlier_position is False


def test_identical_resend_is_duplicate():
    bundle = PendingBundle()
    a = make_tx(SENDER_A, 0, "a")
    bundle.upsert(a)
    result = bundle.upsert(make_tx(SENDER_A, 0, "a"))
    assert result.action is UpsertAction.DUPLICATE
    assert not result.changed
    assert bundle.transactions == [a]


def test_newest_matching_entry_wins():
    # two stale entries for one slot can only exist if built by hand
    old = make_tx(SENDER_A, 0, "old")
    newer = make_tx(SENDER_A, 0, "newer")
    bundle = PendingBundle([old, make_tx(SENDER_B, 0), newer])
    bundle.upsert(make_tx(SENDER_A, 0, "latest"))
    assert bundle.transactions[0] == old
    assert bundle.transactions[2] == make_tx(SENDER_A, 0, "latest")


def test_random_sequences_hold_one_entry_per_slot():
    rng = random.Random(7)
    senders = [SENDER_A, SENDER_B]
    for _ in range(50):
        bundle = PendingBundle()
        latest = {}
        first_seen = []
        for step in range(30):
            slot = (rng.choice(senders), rng.randrange(4))
            tx = make_tx(slot[0], slot[1], str(step))
            bundle.upsert(tx)
            latest[slot] = tx
            if slot not in first_seen:
                first_seen.append(slot)
        slots = [(tx.sender, tx.nonce) for tx in bundle.transactions]
        assert slots == first_seen
        assert bundle.transactions == [latest[s] for s in first_seen]


def test_add_transaction_opens_fork_at_live_height():
    store, live, factory = make_store(live_block=100)
    assert store.state is BundleState.ABSENT
    assert store.active_client is live

    store.add_transaction(make_tx(SENDER_A, 0))

    assert store.state is BundleState.ACTIVE
    assert [f.block_number for f in factory.created] == [100]
    assert store.active_client is factory.created[0].w3
    assert "Created fork at block 100" in store.console.lines


def test_ensure_session_is_idempotent():
    store, _, factory = make_store()
    first = store.ensure_session()
    second = store.ensure_session()
    assert first is second
    assert len(factory.created) == 1
    assert store.snapshot() == []


def test_teardown_resets_and_is_safe_when_absent():
    store, live, factory = make_store()
    store.teardown()
    store.add_transaction(make_tx(SENDER_A, 0))
    store.teardown()
    assert factory.created[0].closed
    assert store.state is BundleState.ABSENT
    assert store.snapshot() is None
    assert store.active_client is live
    store.teardown()


def test_new_fork_after_teardown_uses_current_height():
    store, live, factory = make_store(live_block=100)
    store.add_transaction(make_tx(SENDER_A, 0))
    store.teardown()
    live.eth.block_number = 130
    store.add_transaction(make_tx(SENDER_A, 1))
    assert [f.block_number for f in factory.created] == [100, 130]
    assert store.session.block_number == 130


def test_fork_failure_leaves_bundle_absent():
    factory = DummyForkFactory(fail=ForkUnavailableError("anvil missing"))
    store, _, _ = make_store(fork_factory=factory)
    with pytest.raises(ForkUnavailableError):
        store.add_transaction(make_tx(SENDER_A, 0))
    assert store.state is BundleState.ABSENT
    assert store.session is None


def test_earlier_replacement_warns_operator():
    store, _, _ = make_store()
    for tx in (make_tx(SENDER_A, 0, "a"), make_tx(SENDER_B, 0, "b")):
        store.add_transaction(tx)
    store.add_transaction(make_tx(SENDER_A, 0, "a2"))
    assert "Warning: Replacing TX from earlier in the bundle" in store.console.lines


def test_later_transactions_join_the_open_bundle():
    store, _, factory = make_store()
    a, c = make_tx(SENDER_A, 0), make_tx(SENDER_B, 5)
    store.add_transaction(a)
    bundle = store.bundle
    result = store.add_transaction(c)
    assert store.bundle is bundle
    assert result.index == 1
    assert bundle.transactions == [a, c]
    assert len(factory.created) == 1
