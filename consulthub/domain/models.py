from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
    Index,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Use JSONB on Postgres while keeping SQLite-backed tests portable.
JsonType = JSON().with_variant(JSONB(), "postgresql")
# Autoincrement only works on SQLite for INTEGER primary keys.
AuditIdType = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    pass


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        Index("ix_accounts_role", "role"),
        Index("ix_accounts_enterprise_id", "enterprise_id"),
    )

    # Local identity record; subject_id links it to the external identity provider.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Unique and immutable once set; null until the first verified login or link.
    subject_id: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    email: Mapped[str] = mapped_column(String, unique=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String, default="user")
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Enterprise membership for enterprise_member accounts.
    enterprise_id: Mapped[str | None] = mapped_column(String, nullable=True)
    # Temporary credentials are only used for an enterprise member's first login.
    temp_username: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    temp_password_hash: Mapped[str | None] = mapped_column(String, nullable=True)
    invite_token: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    invite_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class AdminAccount(Base):
    __tablename__ = "admin_accounts"

    # Operator console principal; never provisioned from an IdP token.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str] = mapped_column(String, unique=True)
    password_hash: Mapped[str] = mapped_column(String)
    name: Mapped[str] = mapped_column(String)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ConsultantProfile(Base):
    __tablename__ = "consultant_profiles"
    __table_args__ = (Index("ix_consultant_profiles_kyc_status", "kyc_status"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # One profile per account.
    account_id: Mapped[str] = mapped_column(String, ForeignKey("accounts.id"), unique=True)
    domain: Mapped[str] = mapped_column(String)
    hourly_price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    languages_json: Mapped[list[str] | None] = mapped_column(JsonType, default=list)
    # pending -> verified, moved only by an admin.
    kyc_status: Mapped[str] = mapped_column(String, default="pending")
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by_admin_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("admin_accounts.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class KycDocument(Base):
    __tablename__ = "kyc_documents"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    consultant_id: Mapped[str] = mapped_column(String, ForeignKey("consultant_profiles.id"), index=True)
    document_type: Mapped[str] = mapped_column(String)
    document_url: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, default="pending")
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Enterprise(Base):
    __tablename__ = "enterprises"
    __table_args__ = (Index("ix_enterprises_status", "status"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # The owning account registers the enterprise; members reference it via accounts.enterprise_id.
    owner_account_id: Mapped[str] = mapped_column(String, ForeignKey("accounts.id"), unique=True)
    name: Mapped[str] = mapped_column(String)
    industry: Mapped[str | None] = mapped_column(String, nullable=True)
    website: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, default="pending")
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by_admin_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("admin_accounts.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class AuditEvent(Base):
    __tablename__ = "audit_events"

    # Append-only; id order is write order.
    id: Mapped[int] = mapped_column(AuditIdType, primary_key=True, autoincrement=True)
    # When the action happened, not when the row landed.
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    # Capture the actor identity for audit trails across account and admin principals.
    actor_type: Mapped[str] = mapped_column(String)
    actor_id: Mapped[str | None] = mapped_column(String, nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String, nullable=True)
    event_type: Mapped[str] = mapped_column(String, index=True)
    outcome: Mapped[str] = mapped_column(String)
    resource_type: Mapped[str | None] = mapped_column(String, nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String, nullable=True)
    request_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    ip_address: Mapped[str | None] = mapped_column(String, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
    # Metadata is sanitized before persistence.
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(JsonType, default=dict)
    error_code: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
