"""
Database models - import all models here so metadata.create_all sees them.
"""
from leadcapture.models.lead import Lead
from leadcapture.models.conversation import ConversationMessage

__all__ = [
    "Lead",
    "ConversationMessage",
]
