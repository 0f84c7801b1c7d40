"""
tasktracker.db.models.security

Security telemetry and account protection: audit log, failed logins, sessions,
devices, security questions, threat intelligence and behavioral analytics.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from tasktracker.db.base import Base, TimestampMixin, utcnow


class SecurityAuditLog(Base):
    __tablename__ = "security_audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, index=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False, default="", index=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    user_id: Mapped[int | None] = mapped_column(nullable=True, index=True)
    username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    resource: Mapped[str | None] = mapped_column(String(200), nullable=True)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="Info")
    details: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_successful: Mapped[bool] = mapped_column(nullable=False, default=True)
    is_suspicious: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)


class FailedLoginAttempt(Base):
    __tablename__ = "failed_login_attempts"

    id: Mapped[int] = mapped_column(primary_key=True)
    email_or_username: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False, index=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    attempt_time: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, index=True)
    failure_reason: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    latitude: Mapped[float | None] = mapped_column(nullable=True)
    longitude: Mapped[float | None] = mapped_column(nullable=True)
    is_suspicious: Mapped[bool] = mapped_column(nullable=False, default=False)
    risk_factors: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)


class UserSession(Base):
    __tablename__ = "user_sessions"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False, default="")
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    last_activity: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    device_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    browser: Mapped[str | None] = mapped_column(String(100), nullable=True)
    operating_system: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_suspicious: Mapped[bool] = mapped_column(nullable=False, default=False)
    security_notes: Mapped[str | None] = mapped_column(String(200), nullable=True)
    terminated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    termination_reason: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (Index("ix_user_sessions_user_active", "user_id", "is_active"),)


class UserDevice(Base):
    __tablename__ = "user_devices"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    device_id: Mapped[str] = mapped_column(String(128), nullable=False)
    device_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    device_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    device_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_verified: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    last_active_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)


class SecurityQuestion(TimestampMixin, Base):
    __tablename__ = "security_questions"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    question: Mapped[str] = mapped_column(String(500), nullable=False)
    # "<hex digest>:<hex salt>"
    encrypted_answer: Mapped[str] = mapped_column(String(512), nullable=False)
    question_order: Mapped[int] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    last_used_at: Mapped[datetime | None] = mapped_column(nullable=True)
    usage_count: Mapped[int] = mapped_column(nullable=False, default=0)


class ThreatIntelligence(TimestampMixin, Base):
    __tablename__ = "threat_intelligence"

    id: Mapped[int] = mapped_column(primary_key=True)
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False, index=True)
    threat_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="Medium")
    threat_source: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    confidence_score: Mapped[int] = mapped_column(nullable=False, default=50)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    first_seen: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    last_seen: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    isp: Mapped[str | None] = mapped_column(String(100), nullable=True)
    report_count: Mapped[int] = mapped_column(nullable=False, default=1)
    is_whitelisted: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_blacklisted: Mapped[bool] = mapped_column(nullable=False, default=False)


class BehavioralAnalytics(Base):
    __tablename__ = "behavioral_analytics"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(nullable=False, index=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False, default="")
    user_agent: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    action_type: Mapped[str] = mapped_column(String(100), nullable=False)
    resource_accessed: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    timestamp: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, index=True)
    session_duration_seconds: Mapped[int] = mapped_column(nullable=False, default=0)
    actions_per_minute: Mapped[int] = mapped_column(nullable=False, default=0)
    data_volume_accessed: Mapped[int] = mapped_column(nullable=False, default=0)
    country: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    city: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    device_type: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    browser: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    operating_system: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    is_anomalous: Mapped[bool] = mapped_column(nullable=False, default=False)
    anomaly_score: Mapped[float] = mapped_column(nullable=False, default=0.0)
    risk_level: Mapped[str] = mapped_column(String(20), nullable=False, default="Low")
    anomaly_reason: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    is_new_location: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_new_device: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_off_hours: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_high_velocity: Mapped[bool] = mapped_column(nullable=False, default=False)
    deviation_from_baseline: Mapped[float] = mapped_column(nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
