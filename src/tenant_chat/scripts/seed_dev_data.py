"""Seed development data: one tenant, a staff member, a user and a short thread.

Prints a bearer token per member when JWT_SECRET is configured.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone

import jwt

from tenant_chat.config import settings
from tenant_chat.domain.entities.member import TenantMember
from tenant_chat.domain.value_objects.enums import MemberRole
from tenant_chat.infrastructure.db.uow import uow_scope
from tenant_chat.log_config import configure_logging
from tenant_chat.services import message_service

logger = logging.getLogger(__name__)


async def seed() -> None:
    tenant_id = uuid.uuid4()
    staff_id = uuid.uuid4()
    user_id = uuid.uuid4()
    now = datetime.now(timezone.utc)

    async with uow_scope() as uow:
        await uow.members_w.add(
            TenantMember(tenant_id=tenant_id, user_id=staff_id, role=MemberRole.STAFF, joined_at=now)
        )
        await uow.members_w.add(
            TenantMember(tenant_id=tenant_id, user_id=user_id, role=MemberRole.USER, joined_at=now)
        )
        await uow.commit()

        thread = [
            (user_id, staff_id, "Hi, I cannot find my latest invoice."),
            (staff_id, user_id, "Hello! Which month are you looking for?"),
            (user_id, staff_id, "March, please."),
            (staff_id, user_id, "Found it, sending it over now."),
        ]
        for sender_id, receiver_id, content in thread:
            await message_service.send_message(
                tenant_id, sender_id, receiver_id, content, None, uow,
            )

    logger.info("Seeded tenant %s with %d messages", tenant_id, len(thread))
    logger.info("staff=%s user=%s", staff_id, user_id)

    if settings.JWT_VERIFY_MODE == "hs256" and settings.JWT_SECRET:
        for name, member_id, role in (
            ("staff", staff_id, MemberRole.STAFF),
            ("user", user_id, MemberRole.USER),
        ):
            token = jwt.encode(
                {"sub": str(member_id), "tenant_id": str(tenant_id), "role": role.value},
                settings.JWT_SECRET,
                algorithm=settings.JWT_ALGORITHM,
            )
            logger.info("%s token: %s", name, token)


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
