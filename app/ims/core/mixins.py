"""
Column mixins for the four tables every entity family declares.

Concrete families set ``__category_table__`` / ``__record_table__`` so the
foreign keys resolve to their own tables.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import ClassVar

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column


class CategoryMixin:
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    highlighted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class RecordMixin:
    __category_table__: ClassVar[str]

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    @declared_attr
    def category_id(cls) -> Mapped[int]:
        return mapped_column(
            ForeignKey(f"{cls.__category_table__}.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    version: Mapped[str] = mapped_column(String(32), nullable=False, default="1")  # free-text label
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    highlighted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    document_key: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    @declared_attr
    def created_by_user_id(cls) -> Mapped[int | None]:
        return mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    @declared_attr
    def updated_by_user_id(cls) -> Mapped[int | None]:
        return mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class VersionMixin:
    """Immutable ledger entry; rows are only ever inserted or deleted."""

    __record_table__: ClassVar[str]

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    @declared_attr
    def record_id(cls) -> Mapped[int]:
        return mapped_column(
            ForeignKey(f"{cls.__record_table__}.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )

    version_number: Mapped[str] = mapped_column(String(32), nullable=False)
    snapshot_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    document_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    @declared_attr
    def created_by_user_id(cls) -> Mapped[int | None]:
        return mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class ReviewMixin:
    __record_table__: ClassVar[str]

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    @declared_attr
    def record_id(cls) -> Mapped[int]:
        return mapped_column(
            ForeignKey(f"{cls.__record_table__}.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )

    reviewer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    review_date: Mapped[date] = mapped_column(Date, nullable=False)
    next_review_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    @declared_attr
    def reviewed_by_user_id(cls) -> Mapped[int | None]:
        return mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
