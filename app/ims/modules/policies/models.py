from __future__ import annotations

from datetime import date

from sqlalchemy import Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.ims.core.mixins import CategoryMixin, RecordMixin, ReviewMixin, VersionMixin
from app.ims.models import Base


class PolicyCategory(CategoryMixin, Base):
    __tablename__ = "policy_categories"


class Policy(RecordMixin, Base):
    __tablename__ = "policies"
    __category_table__ = "policy_categories"
    __table_args__ = (
        Index("idx_policies_category_order", "category_id", "order"),
    )

    issue_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    location: Mapped[str] = mapped_column(String(128), nullable=False, default="IMS")


class PolicyVersion(VersionMixin, Base):
    """Previous version labels of a policy, listed by issue date."""

    __tablename__ = "policy_versions"
    __record_table__ = "policies"

    issue_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class PolicyReview(ReviewMixin, Base):
    __tablename__ = "policy_reviews"
    __record_table__ = "policies"
