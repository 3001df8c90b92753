# tests/test_audit.py

"""
Tests for the audit log.
"""

from datetime import datetime, timedelta, timezone

from app.features.access.audit import AuditLog
from app.features.access.domain import AuditEntry, AuditKind


def entry(user_id="user-1", resource="people", granted=True, kind=AuditKind.DECISION, timestamp=None):
    return AuditEntry(
        user_id=user_id,
        action="read",
        resource=resource,
        granted=granted,
        kind=kind,
        timestamp=timestamp or datetime.now(timezone.utc),
    )


def test_record_assigns_increasing_sequence():
    log = AuditLog()
    first = log.record(entry())
    second = log.record(entry())
    assert second.sequence == first.sequence + 1
    assert len(log) == 2


def test_query_newest_first_with_ties_broken_by_sequence():
    log = AuditLog()
    at = datetime(2024, 5, 1, tzinfo=timezone.utc)
    first = log.record(entry(user_id="a", timestamp=at))
    second = log.record(entry(user_id="b", timestamp=at))

    assert [e.id for e in log.query()] == [second.id, first.id]


def test_query_filters():
    log = AuditLog()
    log.record(entry(user_id="a", resource="people", granted=True))
    log.record(entry(user_id="a", resource="events", granted=False))
    log.record(entry(user_id="b", resource="roles", kind=AuditKind.MUTATION))

    assert len(log.query(user_id="a")) == 2
    assert [e.resource for e in log.query(granted=False)] == ["events"]
    assert [e.user_id for e in log.query(kind=AuditKind.MUTATION)] == ["b"]
    assert log.query(resource="people", user_id="b") == []


def test_time_range_is_inclusive():
    log = AuditLog()
    base = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    for hours in range(4):
        log.record(entry(timestamp=base + timedelta(hours=hours)))

    window = log.query(since=base + timedelta(hours=1), until=base + timedelta(hours=2))
    assert [e.timestamp.hour for e in window] == [14, 13]


def test_naive_bounds_are_treated_as_utc():
    log = AuditLog()
    log.record(entry(timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)))

    assert len(log.query(since=datetime(2024, 5, 1, 11, 0))) == 1
    assert log.query(since=datetime(2024, 5, 1, 13, 0)) == []


def test_restore_continues_sequence():
    log = AuditLog()
    restored = [entry().model_copy(update={"sequence": 7})]
    log.restore(restored)

    assert log.record(entry()).sequence == 8
    assert len(log) == 2
