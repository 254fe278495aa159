from gradedesk.models.user import User
from gradedesk.models.assignment import Assignment
from gradedesk.models.reference_document import ReferenceDocument
from gradedesk.models.payment import StripePayment
from gradedesk.models.stripe_event import StripeEvent

__all__ = [
    "User", "Assignment", "ReferenceDocument",
    "StripePayment", "StripeEvent",
]
