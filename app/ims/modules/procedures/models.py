from __future__ import annotations

from datetime import date

from sqlalchemy import Date, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.ims.core.mixins import CategoryMixin, RecordMixin, ReviewMixin, VersionMixin
from app.ims.models import Base


class ProcedureCategory(CategoryMixin, Base):
    __tablename__ = "procedure_categories"


class Procedure(RecordMixin, Base):
    __tablename__ = "procedures"
    __category_table__ = "procedure_categories"
    __table_args__ = (
        Index("idx_procedures_category_order", "category_id", "order"),
    )

    issue_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")


class ProcedureVersion(VersionMixin, Base):
    __tablename__ = "procedure_versions"
    __record_table__ = "procedures"

    issue_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class ProcedureReview(ReviewMixin, Base):
    __tablename__ = "procedure_reviews"
    __record_table__ = "procedures"
