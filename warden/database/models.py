"""SQLAlchemy models"""

from datetime import datetime
from sqlalchemy import Column, String, Boolean, Text, ForeignKey, TIMESTAMP, JSON, Integer
import sqlalchemy as sa
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from warden.database.database import Base
from warden.security.two_fa import TwoFactorState
import uuid


def generate_id():
    """Generate a unique ID"""
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


class Organization(Base):
    """Organization model"""
    __tablename__ = "organizations"

    id = Column(String, primary_key=True, default=generate_id)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False)
    logo = Column(String, nullable=True)
    org_metadata = Column(JSON, default=dict)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    # Relationships
    memberships = relationship("Membership", back_populates="organization", cascade="all, delete-orphan")
    invitations = relationship("Invitation", back_populates="organization", cascade="all, delete-orphan")

    def to_dict(self):
        """Convert organization to dictionary"""
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "logo": self.logo,
            "metadata": self.org_metadata or {},
            "created_at": _iso(self.created_at),
        }


class User(Base):
    """User model"""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_id)
    email = Column(String, unique=True, nullable=False)
    name = Column(String(100), nullable=False, default="")
    image = Column(String, nullable=True)
    password_hash = Column(String, nullable=True)  # Nullable for social/passkey-only users
    email_verified = Column(Boolean, default=False, nullable=False)
    two_fa_enabled = Column(Boolean, default=False, nullable=False)
    two_fa_secret = Column(String, nullable=True)  # Encrypted
    two_fa_pending_secret = Column(String, nullable=True)  # Encrypted, only while enrolling
    two_fa_backup_codes = Column(JSON, default=list)  # SHA-256 hashes
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    # Relationships
    sessions = relationship("Session", back_populates="user", cascade="all, delete-orphan")
    one_time_codes = relationship("OneTimeCode", back_populates="user", cascade="all, delete-orphan")
    memberships = relationship("Membership", back_populates="user", cascade="all, delete-orphan")
    passkeys = relationship("PasskeyCredential", back_populates="user", cascade="all, delete-orphan")
    social_accounts = relationship("SocialAccount", back_populates="user", cascade="all, delete-orphan")

    @property
    def two_fa_state(self) -> TwoFactorState:
        """Server-side enrollment state"""
        if self.two_fa_enabled:
            return TwoFactorState.ENABLED
        if self.two_fa_pending_secret:
            return TwoFactorState.AWAITING_OTP_CONFIRMATION
        return TwoFactorState.DISABLED

    def to_dict(self):
        """Convert user to dictionary (excluding secrets)"""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "image": self.image,
            "email_verified": bool(self.email_verified),
            "two_fa_enabled": bool(self.two_fa_enabled),
            "has_password": self.password_hash is not None,
            "created_at": _iso(self.created_at),
        }


class Session(Base):
    """Session model

    ``id`` is the public handle shown in session lists and used for
    revocation; the bearer secret is only stored as ``token_hash``.
    """
    __tablename__ = "sessions"

    id = Column(String, primary_key=True, default=generate_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash = Column(String, unique=True, nullable=False)
    user_agent = Column(String(512), nullable=True)
    ip_address = Column(String(45), nullable=True)
    persistent = Column(Boolean, default=False, nullable=False)
    two_factor_verified = Column(Boolean, default=True, nullable=False)
    active_organization_id = Column(String, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True)
    expires_at = Column(TIMESTAMP, nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        sa.Index("ix_sessions_user_id", "user_id"),
    )

    def is_expired(self):
        """Check if session has expired"""
        return datetime.utcnow() >= self.expires_at

    def to_dict(self, current_session_id=None):
        """Convert session to dictionary (excluding the token)"""
        return {
            "id": self.id,
            "user_agent": self.user_agent,
            "ip_address": self.ip_address,
            "persistent": bool(self.persistent),
            "active_organization_id": self.active_organization_id,
            "expires_at": _iso(self.expires_at),
            "created_at": _iso(self.created_at),
            "current": self.id == current_session_id,
        }


class OneTimeCode(Base):
    """Hashed single-use code or token (OTPs, reset links, challenges)"""
    __tablename__ = "one_time_codes"

    id = Column(String, primary_key=True, default=generate_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    code_hash = Column(String, nullable=False)
    purpose = Column(String(50), nullable=False)
    payload = Column(JSON, default=dict)
    expires_at = Column(TIMESTAMP, nullable=False)
    used_at = Column(TIMESTAMP)
    created_at = Column(TIMESTAMP, server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="one_time_codes")

    __table_args__ = (
        sa.Index("ix_one_time_codes_code_hash", "code_hash"),
    )


class Membership(Base):
    """User-Organization membership carrying the user's role"""
    __tablename__ = "memberships"

    id = Column(String, primary_key=True, default=generate_id)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), default="member", nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    # Relationships
    organization = relationship("Organization", back_populates="memberships")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        sa.UniqueConstraint("organization_id", "user_id", name="uq_membership_org_user"),
    )

    def to_dict(self):
        """Convert membership to dictionary"""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "role": self.role,
            "email": self.user.email if self.user else None,
            "name": self.user.name if self.user else None,
            "image": self.user.image if self.user else None,
            "created_at": _iso(self.created_at),
        }


class Invitation(Base):
    """
    Invitation for an email address to join an organization.

    Flow:
        1. Owner/admin creates invitation (email + role)
        2. System emails a link to the invitee
        3. Invitee signs in with that email and accepts
        4. Membership created with the invited role
    """
    __tablename__ = "invitations"

    id = Column(String, primary_key=True, default=generate_id)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    email = Column(String, nullable=False)
    role = Column(String(20), default="member", nullable=False)
    inviter_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), default="pending", nullable=False)  # pending, accepted, revoked, expired
    expires_at = Column(TIMESTAMP, nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    # Relationships
    organization = relationship("Organization", back_populates="invitations")
    inviter = relationship("User", foreign_keys=[inviter_id])

    __table_args__ = (
        sa.Index("ix_invitations_organization_id", "organization_id"),
        sa.Index("ix_invitations_email", "email"),
        sa.Index("ix_invitations_status", "status"),
        # At most one pending invitation per email and organization
        sa.Index(
            "uq_invitations_pending_email",
            "organization_id",
            "email",
            unique=True,
            postgresql_where=sa.text("status = 'pending'"),
            sqlite_where=sa.text("status = 'pending'"),
        ),
    )

    def to_dict(self):
        """Convert invitation to dictionary"""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "organization_name": self.organization.name if self.organization else None,
            "email": self.email,
            "role": self.role,
            "status": self.status,
            "inviter_id": self.inviter_id,
            "inviter_email": self.inviter.email if self.inviter else None,
            "expires_at": _iso(self.expires_at),
            "created_at": _iso(self.created_at),
        }

    def is_valid(self):
        """Check if invitation is valid (pending and not expired)"""
        if self.status != "pending":
            return False
        if self.expires_at and datetime.utcnow() > self.expires_at:
            return False
        return True


class PasskeyCredential(Base):
    """WebAuthn credential registered by a user"""
    __tablename__ = "passkeys"

    id = Column(String, primary_key=True, default=generate_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    credential_id = Column(String, unique=True, nullable=False)
    public_key = Column(Text, nullable=False)
    sign_count = Column(Integer, default=0, nullable=False)
    name = Column(String(100), nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="passkeys")

    def to_dict(self):
        """Convert passkey to dictionary (excluding the public key)"""
        return {
            "id": self.id,
            "name": self.name,
            "credential_id": self.credential_id,
            "created_at": _iso(self.created_at),
        }


class SocialAccount(Base):
    """Link between a user and an external identity provider account"""
    __tablename__ = "social_accounts"

    id = Column(String, primary_key=True, default=generate_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    provider = Column(String(50), nullable=False)
    provider_user_id = Column(String(255), nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="social_accounts")

    __table_args__ = (
        sa.UniqueConstraint("provider", "provider_user_id", name="uq_social_account_provider_user"),
    )
