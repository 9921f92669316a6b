"""Relational user store backing the SCIM endpoints.

The provisioning core only talks to ``UserStore``; it never opens sessions
itself. Each store call runs in its own short transaction and returns detached
rows (``expire_on_commit=False``) with roles already loaded.

Soft-deleted rows (``disabled=True``) are kept for audit but every lookup
below excludes them.
"""
from __future__ import annotations
import datetime
import uuid
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    create_engine,
    func,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, selectinload, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.elements import ColumnElement


def utc_now() -> datetime.datetime:
    """Naive UTC timestamp (portable across SQLite and PostgreSQL)."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email: Mapped[str] = mapped_column(String(254), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    auth_method: Mapped[str] = mapped_column(String(32), nullable=False, default="scim")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_vip: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    vip_level: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=utc_now)

    roles: Mapped[list[Role]] = relationship(secondary=user_roles, lazy="selectin", order_by=Role.name)

    __table_args__ = (
        # One live account per email; disabled rows may share it.
        Index(
            "uq_users_email_not_disabled",
            "email",
            unique=True,
            sqlite_where=text("disabled = 0"),
            postgresql_where=text("NOT disabled"),
        ),
    )

    @property
    def role_names(self) -> list[str]:
        return [role.name for role in self.roles]

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} active={self.active} disabled={self.disabled}>"


# Columns the orchestrator is allowed to write through insert()/update().
WRITABLE_FIELDS = frozenset({"email", "name", "active", "is_vip", "vip_level", "auth_method"})


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares a single connection."""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


class UserStore:
    """Store accessor consumed by the provisioning service."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "UserStore":
        return cls(build_engine(database_url, echo=echo))

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    # ─────────────────────────────────────────────────────────────────────
    # Lookups (non-disabled rows only)
    # ─────────────────────────────────────────────────────────────────────

    def find_by_id(self, user_id: str) -> Optional[User]:
        stmt = select(User).where(User.id == user_id, User.disabled.is_(False))
        with self._session_factory() as session:
            return session.scalars(stmt).first()

    def find_by_email(self, email: str, exclude_disabled: bool = True) -> Optional[User]:
        stmt = select(User).where(User.email == email)
        if exclude_disabled:
            stmt = stmt.where(User.disabled.is_(False))
        with self._session_factory() as session:
            return session.scalars(stmt).first()

    def count(self, criterion: Optional[ColumnElement[bool]] = None) -> int:
        stmt = select(func.count(User.id)).where(User.disabled.is_(False))
        if criterion is not None:
            stmt = stmt.where(criterion)
        with self._session_factory() as session:
            return session.scalar(stmt) or 0

    def list(self, criterion: Optional[ColumnElement[bool]] = None, offset: int = 0, limit: int = 50) -> list[User]:
        stmt = (
            select(User)
            .where(User.disabled.is_(False))
            .options(selectinload(User.roles))
            .order_by(User.created_at.desc(), User.id)
            .offset(offset)
            .limit(limit)
        )
        if criterion is not None:
            stmt = stmt.where(criterion)
        with self._session_factory() as session:
            return list(session.scalars(stmt).all())

    # ─────────────────────────────────────────────────────────────────────
    # Mutations
    # ─────────────────────────────────────────────────────────────────────

    def insert(self, fields: dict[str, Any]) -> User:
        """Insert a new live user. Raises IntegrityError on a duplicate live email."""
        now = utc_now()
        user = User(
            id=str(uuid.uuid4()),
            disabled=False,
            created_at=now,
            updated_at=now,
            roles=[],
            **_writable(fields),
        )
        with self._session_factory.begin() as session:
            session.add(user)
        return user

    def update(self, user_id: str, fields: dict[str, Any]) -> Optional[User]:
        """Apply ``fields`` to a live user and bump updated_at. None if absent."""
        with self._session_factory.begin() as session:
            user = session.scalars(
                select(User).where(User.id == user_id, User.disabled.is_(False)).with_for_update()
            ).first()
            if user is None:
                return None
            for key, value in _writable(fields).items():
                setattr(user, key, value)
            user.updated_at = max(utc_now(), user.created_at)
            session.flush()
            return user

    def soft_delete(self, user_id: str) -> bool:
        """Mark a live user disabled. False if already absent or disabled."""
        with self._session_factory.begin() as session:
            user = session.scalars(
                select(User).where(User.id == user_id, User.disabled.is_(False)).with_for_update()
            ).first()
            if user is None:
                return False
            user.disabled = True
            user.updated_at = max(utc_now(), user.created_at)
            return True

    # ─────────────────────────────────────────────────────────────────────
    # Role associations (read-mostly; managed outside the SCIM surface)
    # ─────────────────────────────────────────────────────────────────────

    def assign_role(self, user_id: str, role_name: str) -> None:
        with self._session_factory.begin() as session:
            user = session.get(User, user_id)
            if user is None:
                raise LookupError(f"user {user_id} not found")
            role = session.scalars(select(Role).where(Role.name == role_name)).first()
            if role is None:
                role = Role(name=role_name)
                session.add(role)
            if role not in user.roles:
                user.roles.append(role)


def _writable(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise KeyError(f"non-writable user fields: {sorted(unknown)}")
    return dict(fields)
