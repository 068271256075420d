from __future__ import annotations

from typing import Any
from uuid import UUID

from tenant_chat.application.dto.principal import Principal
from tenant_chat.application.exceptions import AuthError
from tenant_chat.domain.value_objects.enums import MemberRole


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    """Build a Principal from decoded token claims.

    The tenant is read from ``tenant_id`` and falls back to ``company_id``.
    """
    tenant_raw = payload.get("tenant_id", payload.get("company_id"))
    try:
        subject_id = UUID(str(payload["sub"]))
        tenant_id = UUID(str(tenant_raw))
    except (KeyError, ValueError) as exc:
        raise AuthError("Token lacks a valid subject or tenant claim") from exc

    try:
        role = MemberRole(payload.get("role", MemberRole.USER))
    except ValueError:
        role = MemberRole.USER
    return Principal(tenant_id=tenant_id, subject_id=subject_id, role=role)
