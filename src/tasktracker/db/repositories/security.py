"""
tasktracker.db.repositories.security

Repositories for the security and monitoring tables.

Responsibilities:
- Audit-log search, per-IP activity aggregates and retention purges.
- Failed-login tracking with lockout windows and attack statistics.
- User sessions (termination, suspicion marking, expiry) and known devices.
- Security questions with salted answer hashes.
- Threat-intelligence entries and behavioral analytics records.

All time windows are measured back from `now`, which defaults to the current
UTC time and can be pinned by callers and tests.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta

from passlib.context import CryptContext
from sqlalchemy import delete, distinct, func, select, update

from tasktracker.db.base import utcnow
from tasktracker.db.errors import ConflictError
from tasktracker.db.models import (
    BehavioralAnalytics,
    FailedLoginAttempt,
    SecurityAuditLog,
    SecurityQuestion,
    ThreatIntelligence,
    User,
    UserDevice,
    UserSession,
)
from tasktracker.db.repositories.base import BaseRepo
from tasktracker.db.repositories.filters import (
    FailedLoginFilter,
    Page,
    PageParams,
    SecurityEventFilter,
)

HIGH_RISK_SEVERITIES = ("High", "Critical")
MAX_SECURITY_QUESTIONS = 3

_answer_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def _since(now: datetime | None, **delta: float) -> datetime:
    return (now or utcnow()) - timedelta(**delta)


# --- audit log ------------------------------------------------------------------


@dataclass(frozen=True)
class AccessStatistics:
    total_requests: int
    unique_ips: int
    suspicious_requests: int


class SecurityAuditRepo(BaseRepo[SecurityAuditLog]):
    model = SecurityAuditLog

    _newest_first = (SecurityAuditLog.timestamp.desc(), SecurityAuditLog.id.desc())

    async def create(self, entity: SecurityAuditLog) -> SecurityAuditLog:
        entity.timestamp = entity.timestamp or utcnow()
        return await super().create(entity)

    async def search(
        self, criteria: SecurityEventFilter, page: PageParams | None = None
    ) -> Page[SecurityAuditLog]:
        stmt = criteria.apply(select(SecurityAuditLog)).order_by(*self._newest_first)
        return await self.paginate(stmt, page or PageParams())

    async def list_for_user(
        self, user_id: int, days: int = 30, *, now: datetime | None = None
    ) -> list[SecurityAuditLog]:
        return await self.find(
            SecurityAuditLog.user_id == user_id,
            SecurityAuditLog.timestamp >= _since(now, days=days),
            order_by=self._newest_first,
        )

    async def list_by_ip(
        self, ip_address: str, hours: int = 24, *, now: datetime | None = None
    ) -> list[SecurityAuditLog]:
        return await self.find(
            SecurityAuditLog.ip_address == ip_address,
            SecurityAuditLog.timestamp >= _since(now, hours=hours),
            order_by=self._newest_first,
        )

    async def unique_ips(self, hours: int = 24, *, now: datetime | None = None) -> list[str]:
        stmt = (
            select(distinct(SecurityAuditLog.ip_address))
            .where(
                SecurityAuditLog.timestamp >= _since(now, hours=hours),
                SecurityAuditLog.ip_address != "",
            )
            .order_by(SecurityAuditLog.ip_address)
        )
        return await self._all(stmt, operation="unique_ips")

    async def unique_ip_count(self, hours: int = 24, *, now: datetime | None = None) -> int:
        return len(await self.unique_ips(hours, now=now))

    async def suspicious_ip_count(self, hours: int = 24, *, now: datetime | None = None) -> int:
        stmt = select(func.count(distinct(SecurityAuditLog.ip_address))).where(
            SecurityAuditLog.timestamp >= _since(now, hours=hours),
            SecurityAuditLog.is_suspicious.is_(True),
        )
        return int(await self._scalar(stmt, operation="suspicious_ip_count") or 0)

    async def last_access_time(self, ip_address: str) -> datetime | None:
        stmt = select(func.max(SecurityAuditLog.timestamp)).where(
            SecurityAuditLog.ip_address == ip_address
        )
        return await self._scalar(stmt, operation="last_access_time")

    async def ip_access_frequency(
        self, ip_address: str, hours: int = 24, *, now: datetime | None = None
    ) -> int:
        return await self.count(
            SecurityAuditLog.ip_address == ip_address,
            SecurityAuditLog.timestamp >= _since(now, hours=hours),
        )

    async def users_from_ip(
        self, ip_address: str, hours: int = 24, *, now: datetime | None = None
    ) -> list[int]:
        stmt = (
            select(distinct(SecurityAuditLog.user_id))
            .where(
                SecurityAuditLog.ip_address == ip_address,
                SecurityAuditLog.user_id.is_not(None),
                SecurityAuditLog.timestamp >= _since(now, hours=hours),
            )
            .order_by(SecurityAuditLog.user_id)
        )
        return await self._all(stmt, operation="users_from_ip")

    async def has_suspicious_activity(
        self, ip_address: str, hours: int = 24, *, now: datetime | None = None
    ) -> bool:
        return await self.exists(
            SecurityAuditLog.ip_address == ip_address,
            SecurityAuditLog.is_suspicious.is_(True),
            SecurityAuditLog.timestamp >= _since(now, hours=hours),
        )

    async def event_count(self, event_type: str, since: datetime) -> int:
        return await self.count(
            SecurityAuditLog.event_type == event_type, SecurityAuditLog.timestamp >= since
        )

    async def high_risk_events(self, since: datetime) -> list[SecurityAuditLog]:
        return await self.find(
            SecurityAuditLog.severity.in_(HIGH_RISK_SEVERITIES),
            SecurityAuditLog.timestamp >= since,
            order_by=self._newest_first,
        )

    async def access_statistics(
        self, hours: int = 24, *, now: datetime | None = None
    ) -> AccessStatistics:
        since = _since(now, hours=hours)
        stmt = select(
            func.count(),
            func.count(distinct(SecurityAuditLog.ip_address)),
            func.count().filter(SecurityAuditLog.is_suspicious.is_(True)),
        ).where(SecurityAuditLog.timestamp >= since)
        total, unique, suspicious = (await self._rows(stmt, operation="access_statistics"))[0]
        return AccessStatistics(int(total), int(unique), int(suspicious or 0))

    async def recent_activity_count(
        self, since: datetime, user_id: int | None = None, ip_address: str | None = None
    ) -> int:
        criteria = [SecurityAuditLog.timestamp >= since]
        if user_id is not None:
            criteria.append(SecurityAuditLog.user_id == user_id)
        if ip_address is not None:
            criteria.append(SecurityAuditLog.ip_address == ip_address)
        return await self.count(*criteria)

    async def purge_older_than(self, cutoff: datetime) -> int:
        removed = await self._write(
            delete(SecurityAuditLog)
            .where(SecurityAuditLog.timestamp < cutoff)
            .execution_options(synchronize_session="evaluate"),
            operation="purge_older_than",
        )
        self._log.info("audit_log_purged", count=removed, cutoff=cutoff.isoformat())
        return removed


# --- failed logins --------------------------------------------------------------


@dataclass(frozen=True)
class FailedLoginStatistics:
    total_attempts: int
    unique_ips: int
    suspicious_attempts: int
    unique_targets: int


class FailedLoginRepo(BaseRepo[FailedLoginAttempt]):
    model = FailedLoginAttempt

    _newest_first = (FailedLoginAttempt.attempt_time.desc(), FailedLoginAttempt.id.desc())

    async def create(self, entity: FailedLoginAttempt) -> FailedLoginAttempt:
        entity.attempt_time = entity.attempt_time or utcnow()
        created = await super().create(entity)
        self._log.info(
            "failed_login_recorded",
            account=entity.email_or_username,
            ip_address=entity.ip_address,
        )
        return created

    async def list_recent(
        self, account: str, minutes: int = 15, *, now: datetime | None = None
    ) -> list[FailedLoginAttempt]:
        return await self.find(
            FailedLoginAttempt.email_or_username == account,
            FailedLoginAttempt.attempt_time >= _since(now, minutes=minutes),
            order_by=self._newest_first,
        )

    async def count_recent(
        self, account: str, minutes: int = 15, *, now: datetime | None = None
    ) -> int:
        return await self.count(
            FailedLoginAttempt.email_or_username == account,
            FailedLoginAttempt.attempt_time >= _since(now, minutes=minutes),
        )

    async def list_in_range(self, start: datetime, end: datetime) -> list[FailedLoginAttempt]:
        return await self.find(
            FailedLoginAttempt.attempt_time >= start,
            FailedLoginAttempt.attempt_time <= end,
            order_by=self._newest_first,
        )

    async def list_paged(
        self, page: PageParams, criteria: FailedLoginFilter | None = None
    ) -> Page[FailedLoginAttempt]:
        stmt = select(FailedLoginAttempt)
        if criteria is not None:
            stmt = criteria.apply(stmt)
        return await self.paginate(stmt.order_by(*self._newest_first), page)

    async def list_by_ip(
        self, ip_address: str, hours: int = 24, *, now: datetime | None = None
    ) -> list[FailedLoginAttempt]:
        return await self.find(
            FailedLoginAttempt.ip_address == ip_address,
            FailedLoginAttempt.attempt_time >= _since(now, hours=hours),
            order_by=self._newest_first,
        )

    async def list_suspicious(
        self, hours: int = 24, *, now: datetime | None = None
    ) -> list[FailedLoginAttempt]:
        return await self.find(
            FailedLoginAttempt.is_suspicious.is_(True),
            FailedLoginAttempt.attempt_time >= _since(now, hours=hours),
            order_by=self._newest_first,
        )

    async def _top(
        self, column, hours: int, limit: int, now: datetime | None, operation: str
    ) -> list[tuple[str, int]]:
        attempts = func.count().label("attempts")
        stmt = (
            select(column, attempts)
            .where(FailedLoginAttempt.attempt_time >= _since(now, hours=hours))
            .group_by(column)
            .order_by(attempts.desc(), column)
            .limit(limit)
        )
        return [(key, int(n)) for key, n in await self._rows(stmt, operation=operation)]

    async def top_targeted_accounts(
        self, hours: int = 24, limit: int = 5, *, now: datetime | None = None
    ) -> list[tuple[str, int]]:
        return await self._top(
            FailedLoginAttempt.email_or_username, hours, limit, now, "top_targeted_accounts"
        )

    async def top_attacking_ips(
        self, hours: int = 24, limit: int = 5, *, now: datetime | None = None
    ) -> list[tuple[str, int]]:
        return await self._top(FailedLoginAttempt.ip_address, hours, limit, now, "top_attacking_ips")

    async def unique_ips(self, hours: int = 24, *, now: datetime | None = None) -> list[str]:
        stmt = (
            select(distinct(FailedLoginAttempt.ip_address))
            .where(FailedLoginAttempt.attempt_time >= _since(now, hours=hours))
            .order_by(FailedLoginAttempt.ip_address)
        )
        return await self._all(stmt, operation="unique_ips")

    async def unique_ip_count(self, hours: int = 24, *, now: datetime | None = None) -> int:
        return len(await self.unique_ips(hours, now=now))

    async def total_count(self, hours: int = 24, *, now: datetime | None = None) -> int:
        return await self.count(FailedLoginAttempt.attempt_time >= _since(now, hours=hours))

    async def suspicious_count(self, hours: int = 24, *, now: datetime | None = None) -> int:
        return await self.count(
            FailedLoginAttempt.is_suspicious.is_(True),
            FailedLoginAttempt.attempt_time >= _since(now, hours=hours),
        )

    async def list_latest(self, limit: int = 10) -> list[FailedLoginAttempt]:
        return await self.find(order_by=self._newest_first, limit=limit)

    async def remove_recent(
        self, account: str, minutes: int = 15, *, now: datetime | None = None
    ) -> int:
        """Clear an account's lockout window, typically after a successful login."""

        return await self._write(
            delete(FailedLoginAttempt)
            .where(
                FailedLoginAttempt.email_or_username == account,
                FailedLoginAttempt.attempt_time >= _since(now, minutes=minutes),
            )
            .execution_options(synchronize_session="evaluate"),
            operation="remove_recent",
        )

    async def accounts_targeted_by_ip(
        self, ip_address: str, hours: int = 1, *, now: datetime | None = None
    ) -> list[str]:
        stmt = (
            select(distinct(FailedLoginAttempt.email_or_username))
            .where(
                FailedLoginAttempt.ip_address == ip_address,
                FailedLoginAttempt.attempt_time >= _since(now, hours=hours),
            )
            .order_by(FailedLoginAttempt.email_or_username)
        )
        return await self._all(stmt, operation="accounts_targeted_by_ip")

    async def is_ip_suspicious(
        self,
        ip_address: str,
        hours: int = 24,
        threshold: int = 10,
        *,
        now: datetime | None = None,
    ) -> bool:
        attempts = await self.list_by_ip(ip_address, hours, now=now)
        return len(attempts) >= threshold or any(a.is_suspicious for a in attempts)

    async def geographical_distribution(
        self, hours: int = 24, *, now: datetime | None = None
    ) -> list[tuple[str, str, int]]:
        attempts = func.count().label("attempts")
        stmt = (
            select(FailedLoginAttempt.country, FailedLoginAttempt.city, attempts)
            .where(
                FailedLoginAttempt.attempt_time >= _since(now, hours=hours),
                FailedLoginAttempt.country.is_not(None),
                FailedLoginAttempt.city.is_not(None),
            )
            .group_by(FailedLoginAttempt.country, FailedLoginAttempt.city)
            .order_by(attempts.desc())
        )
        return [(c, city, int(n)) for c, city, n in await self._rows(stmt)]

    async def statistics(
        self, hours: int = 24, *, now: datetime | None = None
    ) -> FailedLoginStatistics:
        attempts = await self.find(FailedLoginAttempt.attempt_time >= _since(now, hours=hours))
        return FailedLoginStatistics(
            total_attempts=len(attempts),
            unique_ips=len({a.ip_address for a in attempts}),
            suspicious_attempts=sum(1 for a in attempts if a.is_suspicious),
            unique_targets=len({a.email_or_username for a in attempts}),
        )


# --- sessions and devices -------------------------------------------------------


@dataclass(frozen=True)
class SessionStatistics:
    active_sessions: int
    total_sessions: int
    last_login: datetime | None


class SessionRepo(BaseRepo[UserSession]):
    model = UserSession

    _newest_first = (UserSession.created_at.desc(), UserSession.id.desc())

    async def get_by_token(self, token: str) -> UserSession | None:
        return await self.find_one(UserSession.session_token == token)

    async def create(self, entity: UserSession) -> UserSession:
        if await self.exists(UserSession.session_token == entity.session_token):
            raise ConflictError("session token already in use")
        entity.last_activity = entity.last_activity or utcnow()
        return await super().create(entity)

    async def list_active_for_user(self, user_id: int) -> list[UserSession]:
        return await self.find(
            UserSession.user_id == user_id,
            UserSession.is_active.is_(True),
            order_by=(UserSession.last_activity.desc(),),
        )

    async def list_for_user(self, user_id: int, limit: int = 50) -> list[UserSession]:
        return await self.find(UserSession.user_id == user_id, order_by=self._newest_first, limit=limit)

    async def active_count(self, user_id: int) -> int:
        return await self.count(UserSession.user_id == user_id, UserSession.is_active.is_(True))

    async def list_active(self, limit: int = 100) -> list[UserSession]:
        return await self.find(
            UserSession.is_active.is_(True),
            order_by=(UserSession.last_activity.desc(),),
            limit=limit,
        )

    async def list_recently_terminated(self, limit: int = 50) -> list[UserSession]:
        return await self.find(
            UserSession.is_active.is_(False),
            UserSession.terminated_at.is_not(None),
            order_by=(UserSession.terminated_at.desc(),),
            limit=limit,
        )

    async def list_expired(self, now: datetime | None = None) -> list[UserSession]:
        return await self.find(
            UserSession.is_active.is_(True),
            UserSession.expires_at < (now or utcnow()),
            order_by=(UserSession.expires_at,),
        )

    async def list_suspicious(
        self, hours: int = 24, *, now: datetime | None = None
    ) -> list[UserSession]:
        return await self.find(
            UserSession.is_suspicious.is_(True),
            UserSession.created_at >= _since(now, hours=hours),
            order_by=self._newest_first,
        )

    async def list_by_ip(
        self, ip_address: str, hours: int = 24, *, now: datetime | None = None
    ) -> list[UserSession]:
        return await self.find(
            UserSession.ip_address == ip_address,
            UserSession.created_at >= _since(now, hours=hours),
            order_by=self._newest_first,
        )

    async def list_in_range(self, start: datetime, end: datetime) -> list[UserSession]:
        return await self.find(
            UserSession.created_at >= start,
            UserSession.created_at <= end,
            order_by=self._newest_first,
        )

    async def terminate(self, token: str, reason: str) -> bool:
        session = await self.get_by_token(token)
        if session is None or not session.is_active:
            return False
        session.is_active = False
        session.terminated_at = utcnow()
        session.termination_reason = reason
        await self._flush(operation="terminate")
        self._log.info("session_terminated", user_id=session.user_id, reason=reason)
        return True

    async def terminate_all_for_user(
        self, user_id: int, reason: str, exclude_token: str | None = None
    ) -> int:
        stmt = update(UserSession).where(
            UserSession.user_id == user_id, UserSession.is_active.is_(True)
        )
        if exclude_token is not None:
            stmt = stmt.where(UserSession.session_token != exclude_token)
        terminated = await self._write(
            stmt.values(is_active=False, terminated_at=utcnow(), termination_reason=reason)
            .execution_options(synchronize_session="evaluate"),
            operation="terminate_all_for_user",
        )
        self._log.info("user_sessions_terminated", user_id=user_id, count=terminated)
        return terminated

    async def mark_suspicious(self, token: str, reason: str) -> bool:
        session = await self.get_by_token(token)
        if session is None:
            return False
        session.is_suspicious = True
        session.security_notes = reason
        await self._flush(operation="mark_suspicious")
        self._log.warning("session_marked_suspicious", user_id=session.user_id, reason=reason)
        return True

    async def touch(self, token: str, new_expiry: datetime) -> bool:
        session = await self.get_by_token(token)
        if session is None or not session.is_active:
            return False
        session.last_activity = utcnow()
        session.expires_at = new_expiry
        await self._flush(operation="touch")
        return True

    async def oldest_active(self, user_id: int) -> UserSession | None:
        return await self.find_one(
            UserSession.user_id == user_id,
            UserSession.is_active.is_(True),
            order_by=(UserSession.created_at, UserSession.id),
        )

    async def user_statistics(self, user_id: int) -> SessionStatistics:
        stmt = select(
            func.count(),
            func.count().filter(UserSession.is_active.is_(True)),
            func.max(UserSession.created_at),
        ).where(UserSession.user_id == user_id)
        total, active, last_login = (await self._rows(stmt, operation="user_statistics"))[0]
        return SessionStatistics(int(active or 0), int(total or 0), last_login)

    async def has_concurrent_locations(self, user_id: int) -> bool:
        stmt = select(func.count(distinct(UserSession.country))).where(
            UserSession.user_id == user_id,
            UserSession.is_active.is_(True),
            UserSession.country.is_not(None),
        )
        return int(await self._scalar(stmt) or 0) > 1

    async def device_statistics(
        self, hours: int = 24, *, now: datetime | None = None
    ) -> list[tuple[str, str, int]]:
        sessions = func.count().label("sessions")
        stmt = (
            select(UserSession.device_type, UserSession.browser, sessions)
            .where(
                UserSession.created_at >= _since(now, hours=hours),
                UserSession.device_type.is_not(None),
                UserSession.browser.is_not(None),
            )
            .group_by(UserSession.device_type, UserSession.browser)
            .order_by(sessions.desc())
        )
        return [(d, b, int(n)) for d, b, n in await self._rows(stmt)]

    async def cleanup_terminated(self, days: int = 30, *, now: datetime | None = None) -> int:
        removed = await self._write(
            delete(UserSession)
            .where(
                UserSession.is_active.is_(False),
                UserSession.terminated_at.is_not(None),
                UserSession.terminated_at < _since(now, days=days),
            )
            .execution_options(synchronize_session="evaluate"),
            operation="cleanup_terminated",
        )
        self._log.info("terminated_sessions_removed", count=removed, days=days)
        return removed

    async def list_long_running(
        self, hours: int = 24, *, now: datetime | None = None
    ) -> list[UserSession]:
        return await self.find(
            UserSession.is_active.is_(True),
            UserSession.created_at <= _since(now, hours=hours),
            order_by=(UserSession.created_at,),
        )

    # devices

    async def list_devices(self, user_id: int) -> list[UserDevice]:
        return await self._all(
            select(UserDevice)
            .where(UserDevice.user_id == user_id)
            .order_by(UserDevice.last_active_at.desc()),
            operation="list_devices",
        )

    async def get_device(self, user_id: int, device_id: str) -> UserDevice | None:
        return await self._first(
            select(UserDevice).where(UserDevice.user_id == user_id, UserDevice.device_id == device_id)
        )

    async def register_device(
        self,
        user_id: int,
        device_id: str,
        *,
        device_type: str | None = None,
        device_name: str | None = None,
        device_token: str | None = None,
    ) -> UserDevice:
        device = await self.get_device(user_id, device_id)
        now = utcnow()
        if device is None:
            device = UserDevice(
                user_id=user_id,
                device_id=device_id,
                device_type=device_type,
                device_name=device_name,
                device_token=device_token,
                created_at=now,
                last_active_at=now,
            )
            self._session.add(device)
            self._log.info("device_registered", user_id=user_id, device_id=device_id)
        else:
            device.last_active_at = now
            if device_token is not None:
                device.device_token = device_token
        await self._flush(operation="register_device")
        return device

    async def set_device_trusted(self, user_id: int, device_id: str, trusted: bool) -> bool:
        device = await self.get_device(user_id, device_id)
        if device is None:
            return False
        device.is_verified = trusted
        await self._flush(operation="set_device_trusted")
        return True


# --- security questions ---------------------------------------------------------


def _normalize_answer(answer: str) -> str:
    return answer.strip().lower()


def hash_answer(answer: str) -> str:
    """Salted bcrypt hash of the normalized answer."""
    return _answer_context.hash(_normalize_answer(answer))


def answer_matches(answer: str, stored: str) -> bool:
    try:
        return _answer_context.verify(_normalize_answer(answer), stored)
    except ValueError:
        # Not a hash this context recognizes.
        return False


class SecurityQuestionRepo(BaseRepo[SecurityQuestion]):
    model = SecurityQuestion

    _ordered = (SecurityQuestion.question_order, SecurityQuestion.id)

    async def list_for_user(self, user_id: int) -> list[SecurityQuestion]:
        return await self.find(SecurityQuestion.user_id == user_id, order_by=self._ordered)

    async def list_active(self, user_id: int) -> list[SecurityQuestion]:
        return await self.find(
            SecurityQuestion.user_id == user_id,
            SecurityQuestion.is_active.is_(True),
            order_by=self._ordered,
        )

    async def list_ordered(self, user_id: int) -> list[SecurityQuestion]:
        return await self.list_active(user_id)

    async def list_for_email(self, email: str) -> list[SecurityQuestion]:
        owner = select(User.id).where(func.lower(User.email) == email.lower())
        return await self.find(
            SecurityQuestion.user_id.in_(owner),
            SecurityQuestion.is_active.is_(True),
            order_by=self._ordered,
        )

    async def has_questions(self, user_id: int) -> bool:
        return await self.exists(
            SecurityQuestion.user_id == user_id, SecurityQuestion.is_active.is_(True)
        )

    async def count_for_user(self, user_id: int) -> int:
        return await self.count(
            SecurityQuestion.user_id == user_id, SecurityQuestion.is_active.is_(True)
        )

    async def is_order_used(self, user_id: int, order: int) -> bool:
        return await self.exists(
            SecurityQuestion.user_id == user_id,
            SecurityQuestion.question_order == order,
            SecurityQuestion.is_active.is_(True),
        )

    async def next_available_order(self, user_id: int) -> int:
        for order in range(1, MAX_SECURITY_QUESTIONS + 1):
            if not await self.is_order_used(user_id, order):
                return order
        return MAX_SECURITY_QUESTIONS + 1

    async def create_question(
        self, user_id: int, question: str, answer: str, order: int | None = None
    ) -> SecurityQuestion:
        if await self.count_for_user(user_id) >= MAX_SECURITY_QUESTIONS:
            raise ConflictError(
                "security question limit reached",
                details={"user_id": user_id, "limit": MAX_SECURITY_QUESTIONS},
            )
        if order is None:
            order = await self.next_available_order(user_id)
        if await self.is_order_used(user_id, order):
            raise ConflictError(
                "question order already used", details={"user_id": user_id, "order": order}
            )
        return await self.create(
            SecurityQuestion(
                user_id=user_id,
                question=question,
                encrypted_answer=hash_answer(answer),
                question_order=order,
                is_active=True,
            )
        )

    async def verify_answers(self, user_id: int, answers: Mapping[int, str]) -> bool:
        """Every active question must be answered, and every answer must match."""

        questions = await self.list_active(user_id)
        if not questions:
            return False
        for question in questions:
            answer = answers.get(question.question_order)
            if answer is None or not answer_matches(answer, question.encrypted_answer):
                self._log.warning("security_answer_mismatch", user_id=user_id)
                return False
        return True

    async def mark_used(self, user_id: int) -> int:
        return await self._write(
            update(SecurityQuestion)
            .where(SecurityQuestion.user_id == user_id, SecurityQuestion.is_active.is_(True))
            .values(
                last_used_at=utcnow(),
                usage_count=SecurityQuestion.usage_count + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session="evaluate"),
            operation="mark_used",
        )

    async def delete_all_for_user(self, user_id: int) -> int:
        return await self._write(
            delete(SecurityQuestion)
            .where(SecurityQuestion.user_id == user_id)
            .execution_options(synchronize_session="evaluate"),
            operation="delete_all_for_user",
        )

    async def _set_active(self, user_id: int, active: bool) -> int:
        return await self._write(
            update(SecurityQuestion)
            .where(SecurityQuestion.user_id == user_id, SecurityQuestion.is_active == (not active))
            .values(is_active=active, updated_at=utcnow())
            .execution_options(synchronize_session="evaluate"),
            operation="set_active",
        )

    async def deactivate_all(self, user_id: int) -> int:
        return await self._set_active(user_id, False)

    async def reactivate_all(self, user_id: int) -> int:
        return await self._set_active(user_id, True)


# --- threat intelligence --------------------------------------------------------


class ThreatIntelligenceRepo(BaseRepo[ThreatIntelligence]):
    model = ThreatIntelligence

    _newest_first = (ThreatIntelligence.last_seen.desc(), ThreatIntelligence.id.desc())

    async def list_active(self) -> list[ThreatIntelligence]:
        return await self.find(ThreatIntelligence.is_active.is_(True), order_by=self._newest_first)

    async def list_by_type(self, threat_type: str) -> list[ThreatIntelligence]:
        return await self.find(
            ThreatIntelligence.is_active.is_(True),
            ThreatIntelligence.threat_type == threat_type,
            order_by=self._newest_first,
        )

    async def list_by_severity(self, severity: str) -> list[ThreatIntelligence]:
        return await self.find(
            ThreatIntelligence.is_active.is_(True),
            ThreatIntelligence.severity == severity,
            order_by=self._newest_first,
        )

    async def list_recent(self, count: int = 10) -> list[ThreatIntelligence]:
        return await self.find(
            ThreatIntelligence.is_active.is_(True), order_by=self._newest_first, limit=count
        )

    async def get_by_ip(self, ip_address: str) -> ThreatIntelligence | None:
        return await self.find_one(
            ThreatIntelligence.ip_address == ip_address,
            ThreatIntelligence.is_active.is_(True),
            order_by=self._newest_first,
        )

    async def get_by_ip_and_type(
        self, ip_address: str, threat_type: str
    ) -> ThreatIntelligence | None:
        return await self.find_one(
            ThreatIntelligence.ip_address == ip_address,
            ThreatIntelligence.threat_type == threat_type,
        )

    async def set_active(self, threat_id: int, active: bool) -> bool:
        threat = await self.get(threat_id)
        if threat is None:
            return False
        threat.is_active = active
        await self.update(threat)
        return True

    async def is_blacklisted(self, ip_address: str) -> bool:
        return await self.exists(
            ThreatIntelligence.ip_address == ip_address,
            ThreatIntelligence.is_active.is_(True),
            ThreatIntelligence.is_whitelisted.is_(False),
        )

    async def is_whitelisted(self, ip_address: str) -> bool:
        return await self.exists(
            ThreatIntelligence.ip_address == ip_address,
            ThreatIntelligence.is_whitelisted.is_(True),
        )

    async def threat_types(self) -> list[str]:
        return await self._all(
            select(distinct(ThreatIntelligence.threat_type))
            .where(ThreatIntelligence.is_active.is_(True))
            .order_by(ThreatIntelligence.threat_type)
        )

    async def threat_sources(self) -> list[str]:
        return await self._all(
            select(distinct(ThreatIntelligence.threat_source))
            .where(ThreatIntelligence.is_active.is_(True))
            .order_by(ThreatIntelligence.threat_source)
        )

    async def list_stale(self, days: int, *, now: datetime | None = None) -> list[ThreatIntelligence]:
        return await self.find(
            ThreatIntelligence.last_seen < _since(now, days=days),
            order_by=(ThreatIntelligence.last_seen,),
        )

    async def remove_many(self, threats: Iterable[ThreatIntelligence]) -> int:
        removed = 0
        for threat in threats:
            await self.remove(threat)
            removed += 1
        self._log.info("threats_removed", count=removed)
        return removed

    async def statistics(self) -> dict[str, int]:
        active = await self.list_active()
        return {
            "TotalThreats": len(active),
            "CriticalThreats": sum(1 for t in active if t.severity == "Critical"),
            "HighThreats": sum(1 for t in active if t.severity == "High"),
            "MediumThreats": sum(1 for t in active if t.severity == "Medium"),
            "LowThreats": sum(1 for t in active if t.severity == "Low"),
            "BlacklistedIPs": sum(1 for t in active if t.is_blacklisted),
            "WhitelistedIPs": sum(1 for t in active if t.is_whitelisted),
            "ThreatTypes": len({t.threat_type for t in active}),
            "ThreatSources": len({t.threat_source for t in active}),
        }

    async def top_countries(self, count: int = 10) -> list[str]:
        threats = func.count().label("threats")
        stmt = (
            select(ThreatIntelligence.country, threats)
            .where(
                ThreatIntelligence.is_active.is_(True),
                ThreatIntelligence.country.is_not(None),
                ThreatIntelligence.country != "",
            )
            .group_by(ThreatIntelligence.country)
            .order_by(threats.desc(), ThreatIntelligence.country)
            .limit(count)
        )
        return [country for country, _ in await self._rows(stmt, operation="top_countries")]


# --- behavioral analytics -------------------------------------------------------


@dataclass(frozen=True)
class BehaviorStatistics:
    total_records: int = 0
    anomalous_records: int = 0
    critical_records: int = 0
    high_risk_records: int = 0
    average_anomaly_score: float = 0.0
    last_activity: datetime | None = None


class BehavioralAnalyticsRepo(BaseRepo[BehavioralAnalytics]):
    model = BehavioralAnalytics

    _newest_first = (BehavioralAnalytics.timestamp.desc(), BehavioralAnalytics.id.desc())

    async def bulk_create(self, records: Iterable[BehavioralAnalytics]) -> int:
        now = utcnow()
        items = list(records)
        for record in items:
            record.created_at = now
        self._session.add_all(items)
        await self._flush(operation="bulk_create")
        return len(items)

    async def list_in_range(
        self, start: datetime, end: datetime, limit: int = 1000
    ) -> list[BehavioralAnalytics]:
        return await self.find(
            BehavioralAnalytics.timestamp >= start,
            BehavioralAnalytics.timestamp <= end,
            order_by=self._newest_first,
            limit=limit,
        )

    async def list_recent(
        self, days: int = 7, limit: int = 1000, *, now: datetime | None = None
    ) -> list[BehavioralAnalytics]:
        return await self.find(
            BehavioralAnalytics.timestamp >= _since(now, days=days),
            order_by=self._newest_first,
            limit=limit,
        )

    async def list_for_user(
        self,
        user_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
    ) -> list[BehavioralAnalytics]:
        criteria = [BehavioralAnalytics.user_id == user_id]
        if start is not None:
            criteria.append(BehavioralAnalytics.timestamp >= start)
        if end is not None:
            criteria.append(BehavioralAnalytics.timestamp <= end)
        return await self.find(*criteria, order_by=self._newest_first, limit=limit)

    async def list_anomalous(self, limit: int = 20) -> list[BehavioralAnalytics]:
        return await self.find(
            BehavioralAnalytics.is_anomalous.is_(True),
            order_by=(BehavioralAnalytics.anomaly_score.desc(), *self._newest_first),
            limit=limit,
        )

    async def list_high_risk(self, limit: int = 50) -> list[BehavioralAnalytics]:
        return await self.find(
            BehavioralAnalytics.risk_level.in_(HIGH_RISK_SEVERITIES),
            order_by=self._newest_first,
            limit=limit,
        )

    async def list_off_hours(self, limit: int = 50) -> list[BehavioralAnalytics]:
        return await self.find(
            BehavioralAnalytics.is_off_hours.is_(True), order_by=self._newest_first, limit=limit
        )

    async def list_new_location(self, limit: int = 50) -> list[BehavioralAnalytics]:
        return await self.find(
            BehavioralAnalytics.is_new_location.is_(True), order_by=self._newest_first, limit=limit
        )

    async def list_new_device(self, limit: int = 50) -> list[BehavioralAnalytics]:
        return await self.find(
            BehavioralAnalytics.is_new_device.is_(True), order_by=self._newest_first, limit=limit
        )

    async def list_high_velocity(self, limit: int = 50) -> list[BehavioralAnalytics]:
        return await self.find(
            BehavioralAnalytics.is_high_velocity.is_(True), order_by=self._newest_first, limit=limit
        )

    @staticmethod
    def _summarize(records: list[BehavioralAnalytics]) -> BehaviorStatistics:
        if not records:
            return BehaviorStatistics()
        return BehaviorStatistics(
            total_records=len(records),
            anomalous_records=sum(1 for r in records if r.is_anomalous),
            critical_records=sum(1 for r in records if r.risk_level == "Critical"),
            high_risk_records=sum(1 for r in records if r.risk_level == "High"),
            average_anomaly_score=sum(r.anomaly_score for r in records) / len(records),
            last_activity=max(r.timestamp for r in records),
        )

    async def user_statistics(
        self, user_id: int, days: int = 30, *, now: datetime | None = None
    ) -> BehaviorStatistics:
        records = await self.find(
            BehavioralAnalytics.user_id == user_id,
            BehavioralAnalytics.timestamp >= _since(now, days=days),
        )
        return self._summarize(records)

    async def statistics(self, days: int = 7, *, now: datetime | None = None) -> BehaviorStatistics:
        return self._summarize(
            await self.find(BehavioralAnalytics.timestamp >= _since(now, days=days))
        )

    async def top_anomaly_reasons(
        self, days: int = 7, limit: int = 10, *, now: datetime | None = None
    ) -> list[tuple[str, int]]:
        hits = func.count().label("hits")
        stmt = (
            select(BehavioralAnalytics.anomaly_reason, hits)
            .where(
                BehavioralAnalytics.is_anomalous.is_(True),
                BehavioralAnalytics.anomaly_reason != "",
                BehavioralAnalytics.timestamp >= _since(now, days=days),
            )
            .group_by(BehavioralAnalytics.anomaly_reason)
            .order_by(hits.desc(), BehavioralAnalytics.anomaly_reason)
            .limit(limit)
        )
        return [(reason, int(n)) for reason, n in await self._rows(stmt)]

    async def user_active_hours(
        self, user_id: int, days: int = 30, *, now: datetime | None = None
    ) -> dict[int, int]:
        stmt = select(BehavioralAnalytics.timestamp).where(
            BehavioralAnalytics.user_id == user_id,
            BehavioralAnalytics.timestamp >= _since(now, days=days),
        )
        hours: dict[int, int] = {}
        for ts in await self._all(stmt, operation="user_active_hours"):
            hours[ts.hour] = hours.get(ts.hour, 0) + 1
        return dict(sorted(hours.items()))

    async def update_risk_assessment(
        self, record_id: int, risk_level: str, is_anomalous: bool, score: float
    ) -> bool:
        record = await self.get(record_id)
        if record is None:
            return False
        record.risk_level = risk_level
        record.is_anomalous = is_anomalous
        record.anomaly_score = score
        await self._flush(operation="update_risk_assessment")
        return True

    async def cleanup(self, days: int = 30, *, now: datetime | None = None) -> int:
        removed = await self._write(
            delete(BehavioralAnalytics)
            .where(BehavioralAnalytics.timestamp < _since(now, days=days))
            .execution_options(synchronize_session="evaluate"),
            operation="cleanup",
        )
        self._log.info("behavior_records_removed", count=removed, days=days)
        return removed
