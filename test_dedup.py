from datetime import datetime, timedelta, timezone

from core.dedup import DedupTier, select_policy
from core.identity import UNKNOWN, VisitorIdentity


def test_address_tier_wins_even_with_user():
    policy = select_policy(VisitorIdentity(7, "203.0.113.7", "curl/8.0"))
    assert policy.tier is DedupTier.ADDRESS
    assert policy.window == timedelta(hours=1)
    assert policy.match == {"ip_address": "203.0.113.7"}


def test_user_tier_when_address_unknown():
    policy = select_policy(VisitorIdentity(7, UNKNOWN, "curl/8.0"))
    assert policy.tier is DedupTier.USER
    assert policy.window == timedelta(hours=1)
    assert policy.match == {"user_id": 7}


def test_anonymous_tier_uses_short_window_and_signature():
    policy = select_policy(VisitorIdentity(None, UNKNOWN, "curl/8.0"))
    assert policy.tier is DedupTier.ANONYMOUS
    assert policy.window == timedelta(minutes=5)
    assert policy.match == {"ip_address": UNKNOWN, "user_agent": "curl/8.0"}


def test_windows_can_be_overridden():
    policy = select_policy(
        VisitorIdentity(None, UNKNOWN, UNKNOWN),
        window=timedelta(minutes=30),
        anonymous_window=timedelta(seconds=10),
    )
    assert policy.window == timedelta(seconds=10)


def test_window_start():
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    policy = select_policy(VisitorIdentity(None, "192.0.2.1", UNKNOWN))
    assert policy.window_start(now) == datetime(2024, 5, 1, 11, 0, tzinfo=timezone.utc)


def test_lock_key_separates_visitors_and_tiers():
    a = select_policy(VisitorIdentity(None, "192.0.2.1", UNKNOWN))
    b = select_policy(VisitorIdentity(None, "192.0.2.2", UNKNOWN))
    c = select_policy(VisitorIdentity(1, UNKNOWN, UNKNOWN))
    assert a.lock_key != b.lock_key
    assert a.lock_key != c.lock_key
    assert a.lock_key == select_policy(VisitorIdentity(5, "192.0.2.1", "x")).lock_key


def test_advisory_lock_ids_follow_the_visitor_key():
    from crud.views import EntityKind, _advisory_lock_id

    a = select_policy(VisitorIdentity(None, "192.0.2.1", UNKNOWN))
    b = select_policy(VisitorIdentity(None, "192.0.2.2", UNKNOWN))
    lock_a = _advisory_lock_id(EntityKind.SHOP, 9, a)

    assert lock_a == _advisory_lock_id(EntityKind.SHOP, 9, select_policy(VisitorIdentity(3, "192.0.2.1", "x")))
    assert lock_a != _advisory_lock_id(EntityKind.SHOP, 9, b)
    assert lock_a != _advisory_lock_id(EntityKind.SHOP, 10, a)
    assert lock_a != _advisory_lock_id(EntityKind.PRODUCT, 9, a)
    assert -(2 ** 63) <= lock_a < 2 ** 63
