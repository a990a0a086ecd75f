from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, Float, JSON,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, timezone
from uuid import uuid4

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> str:
    return str(uuid4())


class User(Base):
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=new_uuid)
    username = Column(String(100), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True)

    # Metadata
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    accounts = relationship("UserAccount", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id='{self.id}', username='{self.username}')>"

class UserAccount(Base):
    """One linked platform account; credentials are stored elsewhere."""
    __tablename__ = 'user_accounts'

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    platform = Column(String(30), nullable=False)
    platform_username = Column(String(100), nullable=True)

    # Metadata
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    user = relationship("User", back_populates="accounts")
    snapshots = relationship("PlatformSnapshot", back_populates="account", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('user_id', 'platform', 'platform_username'),
        Index('ix_user_accounts_user_platform', 'user_id', 'platform'),
    )

    def __repr__(self):
        return f"<UserAccount(user_id='{self.user_id}', platform='{self.platform}')>"

class PlatformSnapshot(Base):
    """Append-only metric capture for one account; never updated after insert."""
    __tablename__ = 'platform_snapshots'

    id = Column(Integer, primary_key=True)
    user_account_id = Column(String(36), ForeignKey('user_accounts.id', ondelete='CASCADE'), nullable=False)
    metrics = Column(JSON, nullable=False)
    metric_score = Column(Float, nullable=True)  # 0-100, null until computed
    recorded_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    account = relationship("UserAccount", back_populates="snapshots")

    __table_args__ = (
        Index('ix_platform_snapshots_account_recorded', 'user_account_id', 'recorded_at'),
    )

    def __repr__(self):
        return f"<PlatformSnapshot(account='{self.user_account_id}', score={self.metric_score})>"

class LeaderboardCache(Base):
    """Materialized leaderboard for one scope, replaced wholesale on each rebuild."""
    __tablename__ = 'leaderboard_cache'

    scope = Column(String(50), primary_key=True)
    entries = Column(Text, nullable=False)  # JSON list of ranked entries
    total_users = Column(Integer, default=0)
    skipped_users = Column(Integer, default=0)
    version = Column(Integer, nullable=False, default=0)
    computed_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<LeaderboardCache(scope='{self.scope}', version={self.version}, users={self.total_users})>"

class Configuration(Base):
    __tablename__ = 'configurations'

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)  # JSON-encoded value
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Configuration(key='{self.key}')>"

class AuditLog(Base):
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    user_id = Column(String(36), nullable=True)
    action = Column(String(50), nullable=False)
    details = Column(Text)  # JSON payload
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<AuditLog(action='{self.action}', user_id='{self.user_id}')>"
