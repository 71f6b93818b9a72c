from app.ims.core.family import INCREMENT, EntityFamily, register
from app.ims.models import (
    RiskAssessment,
    RiskAssessmentCategory,
    RiskAssessmentReview,
    RiskAssessmentVersion,
)

# Archive/highlight are not attributed for risk assessments; only approvals and edits are.
FAMILY = register(
    EntityFamily(
        key="risk_assessments",
        label="Risk assessment",
        record_model=RiskAssessment,
        category_model=RiskAssessmentCategory,
        version_model=RiskAssessmentVersion,
        review_model=RiskAssessmentReview,
        version_strategy=INCREMENT,
        version_order_by="created_at",
        tracked_fields=("title", "version", "review_date", "department"),
        editable_fields=("review_date", "next_review_date", "department", "content"),
        date_fields=("review_date", "next_review_date"),
    )
)
