"""
tests.test_security

Audit search, lockout windows, sessions, security questions, threat
intelligence and behavioral records.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from tasktracker.db.errors import ConflictError
from tasktracker.db.models import (
    BehavioralAnalytics,
    FailedLoginAttempt,
    SecurityAuditLog,
    ThreatIntelligence,
    UserSession,
)
from tasktracker.db.repositories.filters import PageParams, SecurityEventFilter
from tasktracker.db.repositories.security import (
    MAX_SECURITY_QUESTIONS,
    BehavioralAnalyticsRepo,
    FailedLoginRepo,
    SecurityAuditRepo,
    SecurityQuestionRepo,
    SessionRepo,
    ThreatIntelligenceRepo,
    answer_matches,
    hash_answer,
)
from tests.factories import NOW, add_user


@pytest.mark.asyncio
async def test_audit_search_filters_newest_first(session) -> None:
    audit = SecurityAuditRepo(session)
    for minutes, event, ip, suspicious in [
        (50, "Login", "10.0.0.1", False),
        (40, "Login", "10.0.0.2", True),
        (30, "PasswordReset", "10.0.0.1", False),
        (20, "Login", "10.0.0.1", True),
    ]:
        await audit.create(
            SecurityAuditLog(
                event_type=event,
                ip_address=ip,
                is_suspicious=suspicious,
                timestamp=NOW - timedelta(minutes=minutes),
            )
        )

    page = await audit.search(
        SecurityEventFilter(event_types=("Login",)), PageParams(page_number=1, page_size=2)
    )
    assert page.total_count == 3
    assert [e.ip_address for e in page.items] == ["10.0.0.1", "10.0.0.2"]
    assert page.has_next is True

    assert await audit.unique_ips(now=NOW) == ["10.0.0.1", "10.0.0.2"]
    assert await audit.suspicious_ip_count(now=NOW) == 2
    assert await audit.ip_access_frequency("10.0.0.1", now=NOW) == 3
    assert await audit.has_suspicious_activity("10.0.0.2", now=NOW) is True

    stats = await audit.access_statistics(now=NOW)
    assert (stats.total_requests, stats.unique_ips, stats.suspicious_requests) == (4, 2, 2)

    assert await audit.purge_older_than(NOW - timedelta(minutes=35)) == 2
    assert await audit.count() == 2


@pytest.mark.asyncio
async def test_failed_logins_form_a_sliding_lockout_window(session) -> None:
    failures = FailedLoginRepo(session)
    for minutes, ip in [(1, "10.0.0.9"), (5, "10.0.0.9"), (30, "10.0.0.7")]:
        await failures.create(
            FailedLoginAttempt(
                email_or_username="alice",
                ip_address=ip,
                attempt_time=NOW - timedelta(minutes=minutes),
            )
        )
    await failures.create(
        FailedLoginAttempt(
            email_or_username="bob", ip_address="10.0.0.9", attempt_time=NOW, is_suspicious=True
        )
    )

    assert await failures.count_recent("alice", now=NOW) == 2
    assert await failures.top_targeted_accounts(now=NOW) == [("alice", 3), ("bob", 1)]
    assert await failures.accounts_targeted_by_ip("10.0.0.9", now=NOW) == ["alice", "bob"]
    assert await failures.is_ip_suspicious("10.0.0.9", now=NOW) is True
    assert await failures.is_ip_suspicious("10.0.0.7", now=NOW) is False

    stats = await failures.statistics(now=NOW)
    assert (stats.total_attempts, stats.unique_ips, stats.unique_targets) == (4, 2, 2)

    assert await failures.remove_recent("alice", now=NOW) == 2
    assert await failures.count_recent("alice", minutes=60, now=NOW) == 1


@pytest.mark.asyncio
async def test_sessions_terminate_and_report(session) -> None:
    user = await add_user(session, "alice")
    sessions = SessionRepo(session)
    for token, country in [("tok-a", "NO"), ("tok-b", "SE"), ("tok-c", None)]:
        await sessions.create(
            UserSession(
                user_id=user.id,
                session_token=token,
                country=country,
                expires_at=NOW + timedelta(hours=1),
            )
        )

    with pytest.raises(ConflictError):
        await sessions.create(
            UserSession(user_id=user.id, session_token="tok-a", expires_at=NOW)
        )
    assert await sessions.has_concurrent_locations(user.id) is True

    assert await sessions.terminate("tok-a", "logout") is True
    assert await sessions.terminate("tok-a", "logout") is False
    assert await sessions.mark_suspicious("tok-b", "impossible travel") is True
    assert await sessions.terminate_all_for_user(user.id, "password change", "tok-c") == 1
    assert [s.session_token for s in await sessions.list_active_for_user(user.id)] == ["tok-c"]

    stats = await sessions.user_statistics(user.id)
    assert (stats.active_sessions, stats.total_sessions) == (1, 3)
    assert await sessions.list_expired(NOW + timedelta(hours=2)) != []


@pytest.mark.asyncio
async def test_devices_register_once_and_refresh(session) -> None:
    user = await add_user(session, "alice")
    sessions = SessionRepo(session)

    first = await sessions.register_device(user.id, "phone-1", device_type="ios")
    again = await sessions.register_device(user.id, "phone-1", device_token="push-token")
    assert again is first
    assert first.device_token == "push-token"
    assert await sessions.set_device_trusted(user.id, "phone-1", True) is True
    assert await sessions.set_device_trusted(user.id, "missing", True) is False


def test_answer_hashing_is_salted_and_normalized() -> None:
    stored = hash_answer("  Fluffy ")
    assert stored.startswith("$2b$")
    assert stored != hash_answer("fluffy")
    assert answer_matches("FLUFFY", stored) is True
    assert answer_matches("rex", stored) is False
    assert answer_matches("fluffy", "not-a-hash") is False


@pytest.mark.asyncio
async def test_security_questions_order_and_verification(session) -> None:
    user = await add_user(session, "alice")
    questions = SecurityQuestionRepo(session)

    first = await questions.create_question(user.id, "First pet?", "Fluffy")
    second = await questions.create_question(user.id, "Birth city?", "Oslo")
    assert (first.question_order, second.question_order) == (1, 2)
    assert "Fluffy" not in first.encrypted_answer
    with pytest.raises(ConflictError):
        await questions.create_question(user.id, "Again?", "x", order=2)

    assert [q.id for q in await questions.list_for_email("ALICE@example.com")] == [
        first.id,
        second.id,
    ]
    assert await questions.verify_answers(user.id, {1: "fluffy", 2: " oslo"}) is True
    assert await questions.verify_answers(user.id, {1: "fluffy"}) is False
    assert await questions.verify_answers(user.id, {1: "fluffy", 2: "bergen"}) is False

    assert await questions.deactivate_all(user.id) == 2
    assert await questions.has_questions(user.id) is False
    assert await questions.verify_answers(user.id, {1: "fluffy", 2: "oslo"}) is False
    assert await questions.reactivate_all(user.id) == 2
    assert await questions.next_available_order(user.id) == 3


@pytest.mark.asyncio
async def test_a_fourth_security_question_is_rejected(session) -> None:
    user = await add_user(session, "alice")
    questions = SecurityQuestionRepo(session)
    for text in ("First pet?", "Birth city?", "First school?"):
        await questions.create_question(user.id, text, "answer")

    assert await questions.next_available_order(user.id) == MAX_SECURITY_QUESTIONS + 1
    with pytest.raises(ConflictError):
        await questions.create_question(user.id, "Favourite food?", "soup")
    with pytest.raises(ConflictError):
        await questions.create_question(user.id, "Favourite food?", "soup", order=0)
    assert await questions.count_for_user(user.id) == MAX_SECURITY_QUESTIONS


@pytest.mark.asyncio
async def test_threat_lists_and_statistics(session) -> None:
    threats = ThreatIntelligenceRepo(session)
    bad = await threats.create(
        ThreatIntelligence(
            ip_address="203.0.113.5",
            threat_type="BruteForce",
            severity="Critical",
            threat_source="honeypot",
            country="XX",
            is_blacklisted=True,
            last_seen=NOW - timedelta(days=40),
        )
    )
    await threats.create(
        ThreatIntelligence(
            ip_address="198.51.100.1",
            threat_type="Scanner",
            severity="Low",
            threat_source="feed",
            is_whitelisted=True,
            last_seen=NOW,
        )
    )

    assert await threats.is_blacklisted("203.0.113.5") is True
    assert await threats.is_blacklisted("198.51.100.1") is False
    assert await threats.is_whitelisted("198.51.100.1") is True
    assert await threats.threat_types() == ["BruteForce", "Scanner"]
    assert await threats.top_countries() == ["XX"]

    stats = await threats.statistics()
    assert stats["TotalThreats"] == 2
    assert stats["CriticalThreats"] == 1
    assert stats["WhitelistedIPs"] == 1

    stale = await threats.list_stale(30, now=NOW)
    assert stale == [bad]
    assert await threats.remove_many(stale) == 1
    assert await threats.get_by_ip("203.0.113.5") is None


@pytest.mark.asyncio
async def test_behavior_records_summarize_and_expire(session) -> None:
    behavior = BehavioralAnalyticsRepo(session)
    assert (
        await behavior.bulk_create(
            [
                BehavioralAnalytics(
                    user_id=1,
                    action_type="Login",
                    timestamp=NOW - timedelta(hours=1),
                    is_anomalous=True,
                    anomaly_score=0.8,
                    anomaly_reason="new device",
                    risk_level="High",
                ),
                BehavioralAnalytics(
                    user_id=1,
                    action_type="Login",
                    timestamp=NOW - timedelta(hours=2),
                    anomaly_score=0.2,
                ),
                BehavioralAnalytics(
                    user_id=2, action_type="Export", timestamp=NOW - timedelta(days=45)
                ),
            ]
        )
        == 3
    )

    stats = await behavior.user_statistics(1, now=NOW)
    assert stats.total_records == 2
    assert stats.anomalous_records == 1
    assert stats.high_risk_records == 1
    assert stats.average_anomaly_score == pytest.approx(0.5)
    assert stats.last_activity == NOW - timedelta(hours=1)

    assert await behavior.top_anomaly_reasons(now=NOW) == [("new device", 1)]
    assert await behavior.user_active_hours(1, now=NOW) == {10: 1, 11: 1}
    assert await behavior.cleanup(now=NOW) == 1
    assert (await behavior.statistics(days=365, now=NOW)).total_records == 2


# --- Module Notes -----------------------------------------------------------
# Every window assertion pins `now` to the shared fixed clock.
