from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from tenant_chat.domain.value_objects.enums import MemberRole
from tenant_chat.domain.value_objects.ids import RegistryKey


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller identity extracted from JWT."""

    tenant_id: UUID
    subject_id: UUID
    role: MemberRole = MemberRole.USER

    @property
    def registry_key(self) -> RegistryKey:
        """Key for the WS connection registry."""
        return self.tenant_id, self.subject_id
