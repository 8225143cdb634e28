# SQLAlchemy models
from .base import Base
from .catalog import Learner, LearnerSubject, Subject, Term
from .generation import GenerationLog
from .quota import QuotaWindow
from .wordbank import Delivery, LearningItem

__all__ = [
    # Base
    "Base",
    # Catalog
    "Subject",
    "Term",
    "Learner",
    "LearnerSubject",
    # Wordbank
    "LearningItem",
    "Delivery",
    # Quota
    "QuotaWindow",
    # Generation
    "GenerationLog",
]
