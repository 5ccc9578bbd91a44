from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from questgate.extensions import db, bcrypt

# None must land as SQL NULL so "has a draft" filters stay correct
JSONType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), 'postgresql')


class TimestampedBase(db.Model):
    """Abstract base providing id/created/updated columns."""

    __abstract__ = True

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class UserRole(Enum):
    ADMIN = "admin"
    CONTRIBUTOR = "contributor"


class ContentStatus(Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class EditRequestStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(TimestampedBase):
    __tablename__ = "user"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    username: Mapped[str | None] = mapped_column(String(64))
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SqlEnum(UserRole, name="user_role", native_enum=False),
        nullable=False,
        default=UserRole.CONTRIBUTOR,
    )
    active: Mapped[bool] = mapped_column('is_active', Boolean, nullable=False, default=True)

    audit_logs: Mapped[list["AuditLog"]] = relationship(back_populates="user")
    notifications: Mapped[list["Notification"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def set_password(self, password: str) -> None:
        self.password_hash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode('utf-8'), self.password_hash.encode('utf-8'))
        except ValueError:
            return False

    def has_role(self, *roles: UserRole | str) -> bool:
        role_value = self.role.value if isinstance(self.role, UserRole) else str(self.role)
        allowed = {r.value if isinstance(r, UserRole) else str(r) for r in roles}
        return role_value in allowed

    @property
    def is_admin(self) -> bool:
        return self.has_role(UserRole.ADMIN)

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def is_active(self) -> bool:  # Flask-Login compatibility
        return bool(self.active)

    @property
    def is_anonymous(self) -> bool:
        return False

    def get_id(self) -> str:
        return self.id


class ContentMixin:
    """Columns shared by every reviewable catalog entity.

    ``draft_data`` holds the owner's pending edit of a validated entity (the
    shadow draft); the live columns keep serving the public until an admin
    approves it. ``version`` counts approved content revisions while
    ``row_version`` is the optimistic lock checked on every UPDATE.
    """

    KIND: ClassVar[str]
    NAME_FIELD: ClassVar[str] = "title"
    EDITABLE_FIELDS: ClassVar[tuple[str, ...]] = ()

    created_by: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[ContentStatus] = mapped_column(
        SqlEnum(ContentStatus, name="content_status", native_enum=False),
        nullable=False,
        default=ContentStatus.DRAFT,
    )
    is_validated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    draft_data: Mapped[dict | None] = mapped_column(JSONType)
    edit_reason: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    @property
    def display_name(self) -> str:
        return getattr(self, self.NAME_FIELD) or ""

    @property
    def is_pending_submission(self) -> bool:
        return self.status == ContentStatus.PUBLISHED and not self.is_validated

    @property
    def has_shadow_draft(self) -> bool:
        return self.draft_data is not None

    def live_fields(self) -> dict[str, Any]:
        return {field: getattr(self, field) for field in self.EDITABLE_FIELDS}


class Organization(ContentMixin, TimestampedBase):
    __tablename__ = "organization"

    KIND = "organization"
    NAME_FIELD = "name"
    EDITABLE_FIELDS = ("name", "description", "website_url", "thumbnail_url")

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    website_url: Mapped[str | None] = mapped_column(String(512))
    thumbnail_url: Mapped[str | None] = mapped_column(String(512))

    row_version: Mapped[int] = mapped_column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": row_version}

    expeditions: Mapped[list["Expedition"]] = relationship(back_populates="organization")
    quests: Mapped[list["Quest"]] = relationship(back_populates="organization")


class Expedition(ContentMixin, TimestampedBase):
    """A learning path grouping quests in order."""
    __tablename__ = "expedition"
    __table_args__ = (
        Index("ix_expedition_status_validated", "status", "is_validated"),
    )

    KIND = "expedition"
    EDITABLE_FIELDS = ("title", "summary", "description", "thumbnail_url", "organization_id")

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    summary: Mapped[str | None] = mapped_column(String(500))
    description: Mapped[str | None] = mapped_column(Text)
    thumbnail_url: Mapped[str | None] = mapped_column(String(512))
    organization_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("organization.id", ondelete="SET NULL"),
        index=True,
    )

    row_version: Mapped[int] = mapped_column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": row_version}

    organization: Mapped[Organization | None] = relationship(back_populates="expeditions")
    quests: Mapped[list["Quest"]] = relationship(
        back_populates="expedition",
        order_by="Quest.order_index",
    )


class Quest(ContentMixin, TimestampedBase):
    __tablename__ = "quest"
    __table_args__ = (
        Index("ix_quest_status_validated", "status", "is_validated"),
    )

    KIND = "quest"
    EDITABLE_FIELDS = (
        "title",
        "summary",
        "description",
        "thumbnail_url",
        "link_url",
        "xp_reward",
        "order_index",
        "expedition_id",
        "organization_id",
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    summary: Mapped[str | None] = mapped_column(String(500))
    description: Mapped[str | None] = mapped_column(Text)
    thumbnail_url: Mapped[str | None] = mapped_column(String(512))
    link_url: Mapped[str | None] = mapped_column(String(1000))
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expedition_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("expedition.id", ondelete="SET NULL"),
        index=True,
    )
    organization_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("organization.id", ondelete="SET NULL"),
        index=True,
    )

    row_version: Mapped[int] = mapped_column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": row_version}

    expedition: Mapped[Expedition | None] = relationship(back_populates="quests")
    organization: Mapped[Organization | None] = relationship(back_populates="quests")
    missions: Mapped[list["Mission"]] = relationship(
        back_populates="quest",
        cascade="all, delete-orphan",
        order_by="Mission.order_index",
    )
    progress: Mapped[list["QuestProgress"]] = relationship(
        back_populates="quest",
        cascade="all, delete-orphan",
    )


class Mission(TimestampedBase):
    """Exercise attached to a quest; edited live, outside the review queue."""
    __tablename__ = "mission"

    quest_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("quest.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    requirements: Mapped[str | None] = mapped_column(Text)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    quest: Mapped[Quest] = relationship(back_populates="missions")


class QuestProgress(TimestampedBase):
    __tablename__ = "quest_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "quest_id", name="uq_progress_user_quest"),
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quest_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("quest.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    xp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    quest: Mapped[Quest] = relationship(back_populates="progress")
    user: Mapped[User] = relationship()


class EditRequest(TimestampedBase):
    """Change proposal from a user without direct write access."""
    __tablename__ = "edit_request"
    __table_args__ = (
        Index("ix_edit_request_resource", "resource_type", "resource_id"),
        Index("ix_edit_request_status", "status"),
    )

    resource_type: Mapped[str] = mapped_column(String(32), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    data: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[EditRequestStatus] = mapped_column(
        SqlEnum(EditRequestStatus, name="edit_request_status", native_enum=False),
        nullable=False,
        default=EditRequestStatus.PENDING,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    reviewed_by_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="SET NULL"),
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    proposer: Mapped[User] = relationship(foreign_keys=[user_id])
    reviewed_by: Mapped[User | None] = relationship(foreign_keys=[reviewed_by_id])


class Notification(TimestampedBase):
    __tablename__ = "notification"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    link: Mapped[str | None] = mapped_column(String(512))
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    user: Mapped[User] = relationship(back_populates="notifications")


class AuditLog(TimestampedBase):
    __tablename__ = "audit_log"

    user_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="SET NULL"),
        index=True,
    )
    action: Mapped[str] = mapped_column(String(128), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(128), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(36))
    meta: Mapped[dict | None] = mapped_column(JSONType, default=dict)

    user: Mapped[User | None] = relationship(back_populates="audit_logs")


CONTENT_MODELS: dict[str, type] = {
    model.KIND: model for model in (Quest, Expedition, Organization)
}


__all__ = [name for name in globals() if name[0].isupper()]
