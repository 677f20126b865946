from leadflow.models.delayed_action import DelayedAction
from leadflow.models.faq_entry import FaqEntry
from leadflow.models.lead import Lead

__all__ = [
    "Lead",
    "FaqEntry",
    "DelayedAction",
]
