"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import HTTPConnection

from tenant_chat.application.dto.principal import Principal
from tenant_chat.application.exceptions import AuthError
from tenant_chat.application.policies.permissions import assert_tenant_access
from tenant_chat.application.ports.auth import TokenVerifier
from tenant_chat.application.uow import UnitOfWork
from tenant_chat.config import settings
from tenant_chat.domain.entities.member import TenantMember
from tenant_chat.infrastructure.auth.hs256_verifier import HS256Verifier
from tenant_chat.infrastructure.auth.jwks_verifier import JWKSVerifier
from tenant_chat.infrastructure.db.uow import uow_scope
from tenant_chat.services.broker import RealtimeBroker

_bearer_scheme = HTTPBearer()


async def get_uow() -> AsyncIterator[UnitOfWork]:
    async with uow_scope() as uow:
        yield uow


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]


def _get_verifier() -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        assert settings.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(settings.JWKS_URL)
    return HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = _get_verifier()
    return _verifier


VerifierDep = Annotated[TokenVerifier, Depends(get_verifier)]


def get_broker(connection: HTTPConnection) -> RealtimeBroker:
    return connection.app.state.broker


BrokerDep = Annotated[RealtimeBroker, Depends(get_broker)]


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
    verifier: VerifierDep,
) -> Principal:
    try:
        return await verifier.verify(credentials.credentials)
    except AuthError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.detail,
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


async def get_tenant_member(
    tenant_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> TenantMember:
    """Directory record of the authenticated caller in the path tenant."""
    return await assert_tenant_access(principal, tenant_id, uow.members)


TenantMemberDep = Annotated[TenantMember, Depends(get_tenant_member)]


async def get_tenant_principal(
    principal: CurrentPrincipal,
    _member: TenantMemberDep,
) -> Principal:
    return principal


TenantPrincipal = Annotated[Principal, Depends(get_tenant_principal)]
