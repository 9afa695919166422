"""
Memorial store abstraction with SQL and in-memory implementations.
"""

from __future__ import annotations

import re
import time
import unicodedata
import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import date
from typing import Callable, Dict, Optional, Protocol

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from shared.errors import AuthorizationFailure, NotFoundFailure, PersistenceFailure


class MemorialStore(Protocol):
    """Interface for memorial persistence, scoped by owner where it writes."""

    def get_memorial(self, owner_id: str, memorial_id: str) -> Optional["MemorialRecord"]:
        ...

    def get_memorial_by_slug(self, identifier: str) -> Optional["MemorialRecord"]:
        ...

    def insert_memorial(self, owner_id: str, values: dict) -> "MemorialRecord":
        ...

    def update_memorial(
        self, owner_id: str, memorial_id: str, values: dict
    ) -> "MemorialRecord":
        ...

    def list_services(self, memorial_id: str) -> list["ServiceRecord"]:
        ...

    def list_moments(self, memorial_id: str) -> list["MomentRecord"]:
        ...

    def replace_services(
        self, owner_id: str, memorial_id: str, services: list["ServiceRecord"]
    ) -> None:
        ...

    def replace_moments(
        self, owner_id: str, memorial_id: str, moments: list["MomentRecord"]
    ) -> None:
        ...

    def generate_unique_slug(
        self, name: str, memorial_id: Optional[str] = None
    ) -> str:
        ...

    def find_asset_owner(self, public_id: str) -> Optional[str]:
        ...


@dataclass
class MemorialRecord:
    id: str
    user_id: str
    deceased_name: str = ""
    first_name: str = ""
    middle_name: Optional[str] = None
    last_name: str = ""
    birth_date: Optional[date] = None
    death_date: Optional[date] = None
    headline: Optional[str] = None
    opening_statement: Optional[str] = None
    obituary: str = ""
    life_story: str = ""
    profile_photo_url: Optional[str] = None
    background_photo_url: Optional[str] = None
    additional_info: str = ""
    privacy_setting: str = "public"
    access_password: Optional[str] = None
    slug: Optional[str] = None
    is_draft: bool = True
    is_published: bool = False
    published_at: Optional[float] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())


@dataclass
class ServiceRecord:
    service_type: str
    service_date: Optional[date] = None
    service_time: Optional[str] = None
    location_name: Optional[str] = None
    address: Optional[str] = None
    additional_info: Optional[str] = None
    is_virtual: bool = False
    virtual_link: Optional[str] = None
    display_order: int = 0


@dataclass
class MomentRecord:
    type: str
    url: str
    thumbnail_url: Optional[str] = None
    cloudinary_public_id: Optional[str] = None
    caption: Optional[str] = None
    date_taken: Optional[date] = None
    display_order: int = 0


MEMORIAL_FIELDS = frozenset(f.name for f in fields(MemorialRecord)) - {
    "id",
    "user_id",
    "created_at",
    "updated_at",
}

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Lowercase ASCII words joined by hyphens; "memorial" when nothing is left."""
    ascii_name = (
        unicodedata.normalize("NFKD", name or "").encode("ascii", "ignore").decode("ascii")
    )
    slug = _NON_SLUG.sub("-", ascii_name.lower()).strip("-")
    return slug or "memorial"


def _unique_slug(base: str, taken: Callable[[str], bool]) -> str:
    candidate = base
    suffix = 2
    while taken(candidate):
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


def _check_values(values: dict) -> dict:
    unknown = set(values) - MEMORIAL_FIELDS
    if unknown:
        raise ValueError(f"Unknown memorial fields: {sorted(unknown)}")
    return values


class InMemoryMemorialStore:
    """Simple in-memory store for development and tests."""

    def __init__(self):
        self.memorials: Dict[str, MemorialRecord] = {}
        self.services: Dict[str, list[ServiceRecord]] = {}
        self.moments: Dict[str, list[MomentRecord]] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.memorials.clear()
        self.services.clear()
        self.moments.clear()

    def _owned(self, owner_id: str, memorial_id: str) -> MemorialRecord:
        record = self.memorials.get(memorial_id)
        if record is None:
            raise NotFoundFailure(f"Memorial {memorial_id} not found")
        if record.user_id != owner_id:
            raise AuthorizationFailure("You don't have permission to edit this memorial.")
        return record

    def get_memorial(self, owner_id: str, memorial_id: str) -> Optional[MemorialRecord]:
        record = self.memorials.get(memorial_id)
        if record is None or record.user_id != owner_id:
            return None
        return replace(record)

    def get_memorial_by_slug(self, identifier: str) -> Optional[MemorialRecord]:
        for record in self.memorials.values():
            if record.slug == identifier or record.id == identifier:
                return replace(record)
        return None

    def insert_memorial(self, owner_id: str, values: dict) -> MemorialRecord:
        record = MemorialRecord(
            id=uuid.uuid4().hex, user_id=owner_id, **_check_values(values)
        )
        self.memorials[record.id] = record
        return replace(record)

    def update_memorial(
        self, owner_id: str, memorial_id: str, values: dict
    ) -> MemorialRecord:
        record = self._owned(owner_id, memorial_id)
        for key, value in _check_values(values).items():
            setattr(record, key, value)
        record.updated_at = time.time()
        return replace(record)

    def list_services(self, memorial_id: str) -> list[ServiceRecord]:
        return [replace(s) for s in self.services.get(memorial_id, [])]

    def list_moments(self, memorial_id: str) -> list[MomentRecord]:
        return [replace(m) for m in self.moments.get(memorial_id, [])]

    def replace_services(
        self, owner_id: str, memorial_id: str, services: list[ServiceRecord]
    ) -> None:
        self._owned(owner_id, memorial_id)
        self.services[memorial_id] = [replace(s) for s in services]

    def replace_moments(
        self, owner_id: str, memorial_id: str, moments: list[MomentRecord]
    ) -> None:
        self._owned(owner_id, memorial_id)
        self.moments[memorial_id] = [replace(m) for m in moments]

    def generate_unique_slug(
        self, name: str, memorial_id: Optional[str] = None
    ) -> str:
        taken = {
            r.slug for r in self.memorials.values() if r.slug and r.id != memorial_id
        }
        return _unique_slug(slugify(name), taken.__contains__)

    def find_asset_owner(self, public_id: str) -> Optional[str]:
        for memorial_id, moments in self.moments.items():
            if any(m.cloudinary_public_id == public_id for m in moments):
                record = self.memorials.get(memorial_id)
                return record.user_id if record else None
        return None


class SqlMemorialStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    Child collections are replaced inside one transaction, so a failed insert
    leaves the previous rows in place.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlMemorialStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_memorial(self, row: "MemorialRow") -> MemorialRecord:
        return MemorialRecord(
            **{f.name: getattr(row, f.name) for f in fields(MemorialRecord)}
        )

    def _to_service(self, row: "ServiceRow") -> ServiceRecord:
        return ServiceRecord(
            **{f.name: getattr(row, f.name) for f in fields(ServiceRecord)}
        )

    def _to_moment(self, row: "MomentRow") -> MomentRecord:
        return MomentRecord(
            **{f.name: getattr(row, f.name) for f in fields(MomentRecord)}
        )

    def _owned(self, session: Session, owner_id: str, memorial_id: str) -> "MemorialRow":
        row = session.get(MemorialRow, memorial_id)
        if row is None:
            raise NotFoundFailure(f"Memorial {memorial_id} not found")
        if row.user_id != owner_id:
            raise AuthorizationFailure("You don't have permission to edit this memorial.")
        return row

    def get_memorial(self, owner_id: str, memorial_id: str) -> Optional[MemorialRecord]:
        try:
            with self.Session() as session:
                row = session.get(MemorialRow, memorial_id)
                if row is None or row.user_id != owner_id:
                    return None
                return self._to_memorial(row)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not load memorial: {e}") from e

    def get_memorial_by_slug(self, identifier: str) -> Optional[MemorialRecord]:
        try:
            with self.Session() as session:
                stmt = select(MemorialRow).where(
                    (MemorialRow.slug == identifier) | (MemorialRow.id == identifier)
                )
                row = session.execute(stmt.limit(1)).scalar_one_or_none()
                return self._to_memorial(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not load memorial: {e}") from e

    def insert_memorial(self, owner_id: str, values: dict) -> MemorialRecord:
        now = time.time()
        try:
            with self.Session() as session:
                row = MemorialRow(
                    id=uuid.uuid4().hex,
                    user_id=owner_id,
                    created_at=now,
                    updated_at=now,
                    **_check_values(values),
                )
                session.add(row)
                session.commit()
                session.refresh(row)
                return self._to_memorial(row)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not create memorial: {e}") from e

    def update_memorial(
        self, owner_id: str, memorial_id: str, values: dict
    ) -> MemorialRecord:
        try:
            with self.Session() as session:
                row = self._owned(session, owner_id, memorial_id)
                for key, value in _check_values(values).items():
                    setattr(row, key, value)
                row.updated_at = time.time()
                session.commit()
                session.refresh(row)
                return self._to_memorial(row)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not update memorial: {e}") from e

    def list_services(self, memorial_id: str) -> list[ServiceRecord]:
        try:
            with self.Session() as session:
                rows = session.execute(
                    select(ServiceRow)
                    .where(ServiceRow.memorial_id == memorial_id)
                    .order_by(ServiceRow.display_order.asc())
                ).scalars()
                return [self._to_service(row) for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not load services: {e}") from e

    def list_moments(self, memorial_id: str) -> list[MomentRecord]:
        try:
            with self.Session() as session:
                rows = session.execute(
                    select(MomentRow)
                    .where(MomentRow.memorial_id == memorial_id)
                    .order_by(MomentRow.display_order.asc())
                ).scalars()
                return [self._to_moment(row) for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not load moments: {e}") from e

    def replace_services(
        self, owner_id: str, memorial_id: str, services: list[ServiceRecord]
    ) -> None:
        try:
            with self.Session() as session, session.begin():
                self._owned(session, owner_id, memorial_id)
                session.execute(
                    delete(ServiceRow).where(ServiceRow.memorial_id == memorial_id)
                )
                session.add_all(
                    ServiceRow(
                        id=uuid.uuid4().hex,
                        memorial_id=memorial_id,
                        **{f.name: getattr(s, f.name) for f in fields(ServiceRecord)},
                    )
                    for s in services
                )
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not save services: {e}") from e

    def replace_moments(
        self, owner_id: str, memorial_id: str, moments: list[MomentRecord]
    ) -> None:
        try:
            with self.Session() as session, session.begin():
                self._owned(session, owner_id, memorial_id)
                session.execute(
                    delete(MomentRow).where(MomentRow.memorial_id == memorial_id)
                )
                session.add_all(
                    MomentRow(
                        id=uuid.uuid4().hex,
                        memorial_id=memorial_id,
                        **{f.name: getattr(m, f.name) for f in fields(MomentRecord)},
                    )
                    for m in moments
                )
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not save moments: {e}") from e

    def generate_unique_slug(
        self, name: str, memorial_id: Optional[str] = None
    ) -> str:
        base = slugify(name)
        try:
            with self.Session() as session:
                stmt = select(MemorialRow.slug).where(
                    (MemorialRow.slug == base) | MemorialRow.slug.like(f"{base}-%")
                )
                if memorial_id:
                    stmt = stmt.where(MemorialRow.id != memorial_id)
                taken = set(session.execute(stmt).scalars())
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not generate slug: {e}") from e
        return _unique_slug(base, taken.__contains__)

    def find_asset_owner(self, public_id: str) -> Optional[str]:
        try:
            with self.Session() as session:
                stmt = (
                    select(MemorialRow.user_id)
                    .join(MomentRow, MomentRow.memorial_id == MemorialRow.id)
                    .where(MomentRow.cloudinary_public_id == public_id)
                    .limit(1)
                )
                return session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not look up asset owner: {e}") from e


Base = declarative_base()


class MemorialRow(Base):
    __tablename__ = "memorials"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    deceased_name = Column(String, nullable=False, default="")
    first_name = Column(String, nullable=False, default="")
    middle_name = Column(String, nullable=True)
    last_name = Column(String, nullable=False, default="")
    birth_date = Column(Date, nullable=True)
    death_date = Column(Date, nullable=True)
    headline = Column(String, nullable=True)
    opening_statement = Column(Text, nullable=True)
    obituary = Column(Text, nullable=False, default="")
    life_story = Column(Text, nullable=False, default="")
    profile_photo_url = Column(String, nullable=True)
    background_photo_url = Column(String, nullable=True)
    additional_info = Column(Text, nullable=False, default="")
    privacy_setting = Column(String, nullable=False, default="public")
    access_password = Column(String, nullable=True)
    slug = Column(String, nullable=True, unique=True, index=True)
    is_draft = Column(Boolean, nullable=False, default=True)
    is_published = Column(Boolean, nullable=False, default=False)
    published_at = Column(Float, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class ServiceRow(Base):
    __tablename__ = "memorial_services"

    id = Column(String, primary_key=True)
    memorial_id = Column(
        String, ForeignKey("memorials.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_type = Column(String, nullable=False)
    service_date = Column(Date, nullable=True)
    service_time = Column(String, nullable=True)
    location_name = Column(String, nullable=True)
    address = Column(String, nullable=True)
    additional_info = Column(Text, nullable=True)
    is_virtual = Column(Boolean, nullable=False, default=False)
    virtual_link = Column(String, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)


class MomentRow(Base):
    __tablename__ = "memorial_moments"

    id = Column(String, primary_key=True)
    memorial_id = Column(
        String, ForeignKey("memorials.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type = Column(String, nullable=False)
    url = Column(String, nullable=False)
    thumbnail_url = Column(String, nullable=True)
    cloudinary_public_id = Column(String, nullable=True, index=True)
    caption = Column(Text, nullable=True)
    date_taken = Column(Date, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
