from __future__ import annotations

from datetime import date

from sqlalchemy import Date, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.ims.core.mixins import CategoryMixin, RecordMixin, ReviewMixin, VersionMixin
from app.ims.models import Base


class RiskAssessmentCategory(CategoryMixin, Base):
    __tablename__ = "risk_assessment_categories"


class RiskAssessment(RecordMixin, Base):
    __tablename__ = "risk_assessments"
    __category_table__ = "risk_assessment_categories"
    __table_args__ = (
        Index("idx_risk_assessments_category_order", "category_id", "order"),
        Index("idx_risk_assessments_next_review", "next_review_date"),
    )

    review_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    next_review_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    department: Mapped[str | None] = mapped_column(String(128), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")


class RiskAssessmentVersion(VersionMixin, Base):
    """Explicitly added versions (1, 2, 3, ...), newest first by creation time."""

    __tablename__ = "risk_assessment_versions"
    __record_table__ = "risk_assessments"

    review_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class RiskAssessmentReview(ReviewMixin, Base):
    __tablename__ = "risk_assessment_reviews"
    __record_table__ = "risk_assessments"
