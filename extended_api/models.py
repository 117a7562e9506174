"""SQLAlchemy models for the host issue tracker API."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    # Naive UTC; sqlite drops offsets anyway
    return datetime.now(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


# --- Principals ---
class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(primary_key=True)
    login: Mapped[str] = mapped_column(String(100), unique=True)
    firstname: Mapped[str] = mapped_column(String(100), default="")
    lastname: Mapped[str] = mapped_column(String(100), default="")
    api_key: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    admin: Mapped[bool] = mapped_column(Boolean, default=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    @property
    def name(self) -> str:
        full = f"{self.firstname} {self.lastname}".strip()
        return full or self.login


class Project(Base):
    __tablename__ = "projects"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    identifier: Mapped[str] = mapped_column(String(100), unique=True)


# --- Catalogs ---
class IssueStatus(Base):
    __tablename__ = "issue_statuses"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(30), unique=True)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False)
    position: Mapped[int] = mapped_column(Integer, default=1)
    default_done_ratio: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class Tracker(Base):
    __tablename__ = "trackers"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(30), unique=True)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    default_status_id: Mapped[Optional[int]] = mapped_column(ForeignKey("issue_statuses.id"), nullable=True)
    is_in_roadmap: Mapped[bool] = mapped_column(Boolean, default=True)
    position: Mapped[int] = mapped_column(Integer, default=1)


class Role(Base):
    __tablename__ = "roles"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True)
    position: Mapped[int] = mapped_column(Integer, default=1)
    assignable: Mapped[bool] = mapped_column(Boolean, default=True)
    issues_visibility: Mapped[str] = mapped_column(String(30), default="default")
    permissions: Mapped[list[str]] = mapped_column(JSON, default=list)


class Enumeration(Base):
    """Single-table enumerations discriminated by ``type``."""

    __tablename__ = "enumerations"
    id: Mapped[int] = mapped_column(primary_key=True)
    type: Mapped[str] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(30))
    position: Mapped[int] = mapped_column(Integer, default=1)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)


# --- Issues ---
class Issue(Base):
    __tablename__ = "issues"
    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[Optional[int]] = mapped_column(ForeignKey("projects.id"), nullable=True)
    tracker_id: Mapped[int] = mapped_column(ForeignKey("trackers.id"))
    status_id: Mapped[int] = mapped_column(ForeignKey("issue_statuses.id"))
    priority_id: Mapped[Optional[int]] = mapped_column(ForeignKey("enumerations.id"), nullable=True)
    subject: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_on: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated_on: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    closed_on: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    journals: Mapped[list[Journal]] = relationship(
        back_populates="issue", order_by="Journal.id", cascade="all, delete-orphan"
    )

    # Transient; False keeps deliveries silent for this instance
    notify = True
    current_journal = None


class Journal(Base):
    __tablename__ = "journals"
    id: Mapped[int] = mapped_column(primary_key=True)
    journalized_id: Mapped[int] = mapped_column(ForeignKey("issues.id"))
    journalized_type: Mapped[str] = mapped_column(String(30), default="Issue")
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    updated_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    created_on: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated_on: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    issue: Mapped[Issue] = relationship(back_populates="journals")

    notify = True


class IssueRelation(Base):
    __tablename__ = "issue_relations"
    id: Mapped[int] = mapped_column(primary_key=True)
    issue_from_id: Mapped[int] = mapped_column(ForeignKey("issues.id"))
    issue_to_id: Mapped[int] = mapped_column(ForeignKey("issues.id"))
    relation_type: Mapped[str] = mapped_column(String(30), default="relates")
    delay: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class Attachment(Base):
    __tablename__ = "attachments"
    id: Mapped[int] = mapped_column(primary_key=True)
    container_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    container_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    filename: Mapped[str] = mapped_column(String(255), default="")
    filesize: Mapped[int] = mapped_column(Integer, default=0)
    content_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    digest: Mapped[str] = mapped_column(String(64), default="")
    token: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    author_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_on: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


# --- Custom fields ---
class CustomField(Base):
    __tablename__ = "custom_fields"
    id: Mapped[int] = mapped_column(primary_key=True)
    type: Mapped[str] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    field_format: Mapped[str] = mapped_column(String(30))
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)
    position: Mapped[int] = mapped_column(Integer, default=1)
    is_for_all: Mapped[bool] = mapped_column(Boolean, default=False)
    is_filter: Mapped[bool] = mapped_column(Boolean, default=False)
    searchable: Mapped[bool] = mapped_column(Boolean, default=False)
    visible: Mapped[bool] = mapped_column(Boolean, default=True)
    editable: Mapped[bool] = mapped_column(Boolean, default=True)
    multiple: Mapped[bool] = mapped_column(Boolean, default=False)
    default_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    possible_values: Mapped[list[str]] = mapped_column(JSON, default=list)
    role_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    tracker_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    project_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    # Format specific settings (regexp, min_length, url_pattern, ...)
    format_store: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    enumerations: Mapped[list[CustomFieldEnumeration]] = relationship(
        back_populates="custom_field",
        order_by="CustomFieldEnumeration.position",
        cascade="all, delete-orphan",
    )

    def read_attribute(self, name: str) -> Any:
        if name in self.__mapper__.columns:
            return getattr(self, name)
        return (self.format_store or {}).get(name)

    def write_attribute(self, name: str, value: Any) -> None:
        if name in self.__mapper__.columns:
            setattr(self, name, value)
            return
        store = dict(self.format_store or {})
        store[name] = value
        self.format_store = store


class CustomFieldEnumeration(Base):
    __tablename__ = "custom_field_enumerations"
    id: Mapped[int] = mapped_column(primary_key=True)
    custom_field_id: Mapped[int] = mapped_column(ForeignKey("custom_fields.id"))
    name: Mapped[str] = mapped_column(String(60))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    position: Mapped[int] = mapped_column(Integer, default=1)

    custom_field: Mapped[CustomField] = relationship(back_populates="enumerations")


# --- Automatic timestamps ---
@event.listens_for(Issue, "before_insert")
@event.listens_for(Journal, "before_insert")
def _stamp_created(mapper, connection, target) -> None:
    now = utcnow()
    target.created_on = now
    target.updated_on = now


@event.listens_for(Issue, "before_update")
@event.listens_for(Journal, "before_update")
def _stamp_updated(mapper, connection, target) -> None:
    target.updated_on = utcnow()


@event.listens_for(Attachment, "before_insert")
def _stamp_attachment(mapper, connection, target) -> None:
    target.created_on = utcnow()


__all__ = [
    "Base",
    "User",
    "Project",
    "IssueStatus",
    "Tracker",
    "Role",
    "Enumeration",
    "Issue",
    "Journal",
    "IssueRelation",
    "Attachment",
    "CustomField",
    "CustomFieldEnumeration",
    "utcnow",
]
