"""Create the chat tables on the configured database."""
from __future__ import annotations

import asyncio
import logging

from tenant_chat.config import settings
from tenant_chat.infrastructure.db.base import Base
from tenant_chat.infrastructure.db.models import MessageModel, TenantMemberModel  # noqa: F401
from tenant_chat.infrastructure.db.session import engine
from tenant_chat.log_config import configure_logging

logger = logging.getLogger(__name__)


async def create_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("Created tables: %s", ", ".join(sorted(Base.metadata.tables)))


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(create_schema())


if __name__ == "__main__":
    main()
