from app.ims.core.family import SNAPSHOT, EntityFamily, register
from app.ims.models import Procedure, ProcedureCategory, ProcedureReview, ProcedureVersion

FAMILY = register(
    EntityFamily(
        key="procedures",
        label="Procedure",
        record_model=Procedure,
        category_model=ProcedureCategory,
        version_model=ProcedureVersion,
        review_model=ProcedureReview,
        version_strategy=SNAPSHOT,
        version_order_by="issue_date",
        tracked_fields=("title", "version", "issue_date", "content"),
        editable_fields=("issue_date", "content"),
        date_fields=("issue_date",),
        stamp_actor_on=frozenset({"approve", "unapprove", "update", "archive", "unarchive"}),
    )
)
