from app.ims.core.family import SNAPSHOT, EntityFamily, register
from app.ims.models import Policy, PolicyCategory, PolicyReview, PolicyVersion

# Policies keep a log of superseded labels, and every flag change is attributed.
FAMILY = register(
    EntityFamily(
        key="policies",
        label="Policy",
        record_model=Policy,
        category_model=PolicyCategory,
        version_model=PolicyVersion,
        review_model=PolicyReview,
        version_strategy=SNAPSHOT,
        version_order_by="issue_date",
        tracked_fields=("title", "version", "issue_date", "location"),
        editable_fields=("issue_date", "location"),
        date_fields=("issue_date",),
        stamp_actor_on=frozenset(
            {"approve", "unapprove", "update", "archive", "highlight", "unhighlight", "toggle_highlight"}
        ),
    )
)
