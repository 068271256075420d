from __future__ import annotations

from uuid import UUID

# (tenant_id, user_id)
RegistryKey = tuple[UUID, UUID]
