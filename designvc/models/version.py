"""
Design version table.

One row per commit. `version_number` is the user-facing revision number
(V1, V2, ...) and stays dense: deleting a version shifts every later row
down by one.
"""
from __future__ import annotations

import datetime as _dt

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from sqlalchemy.orm import declarative_base

Base = declarative_base()

DEFAULT_AUTHOR = "designer"


def utcnow() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores UTC, always hands back an aware UTC datetime (sqlite drops the offset)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(_dt.timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=_dt.timezone.utc)
        return value.astimezone(_dt.timezone.utc)


class DesignVersion(Base):
    __tablename__ = "design_versions"
    __table_args__ = (
        UniqueConstraint("version_number", name="uq_design_versions_version_number"),
        # AUTOINCREMENT so sqlite never hands a deleted id to a new row
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    version_number = Column(Integer, nullable=False)
    commit_message = Column(Text, nullable=False)
    preview_url = Column(Text, nullable=True)
    created_by = Column(String(255), nullable=False, default=DEFAULT_AUTHOR)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<DesignVersion id={self.id} V{self.version_number} {self.commit_message!r}>"
