"""Import all models so Base.metadata knows every table."""
from tenant_chat.infrastructure.db.models.member import TenantMemberModel
from tenant_chat.infrastructure.db.models.message import MessageModel

__all__ = [
    "MessageModel",
    "TenantMemberModel",
]
