from __future__ import annotations

from typing import List

from gadamagado.logging import get_logger
from gadamagado.storage.memory import MemoryStore
from gadamagado.storage.models import Principal, Role

logger = get_logger(__name__)

DEMO_USERS = (
    {
        "full_name": "Admin User",
        "phone_number": "+252611111111",
        "email": "admin@gadamagado.com",
        "password": "admin123",
        "region": "Banaadir",
        "district": "Mogadishu",
        "role": Role.ADMIN.value,
    },
    {
        "full_name": "John Doe",
        "phone_number": "+252612345678",
        "email": "john@example.com",
        "password": "test123",
        "region": "Banaadir",
        "district": "Mogadishu",
        "role": Role.USER.value,
    },
)


def seed_demo_users(store: MemoryStore) -> List[Principal]:
    """Create the demo admin and standard user, skipping handles already taken."""

    created: List[Principal] = []
    for account in DEMO_USERS:
        if store.find_by_handle(account["phone_number"]) is not None:
            logger.info("seed_user_exists", role=account["role"])
            continue
        created.append(store.create_user(**account))
        logger.info("seed_user_created", role=account["role"])
    return created
