"""Motor connection to the entity store.

One client per process. Every entity collection is reached through
get_collection() with its name taken from settings.
"""
import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from config.settings import get_settings

logger = logging.getLogger(__name__)

_client: AsyncIOMotorClient | None = None
_db: AsyncIOMotorDatabase | None = None


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        settings = get_settings()
        _client = AsyncIOMotorClient(settings.MONGO_URL)
    return _client


def get_db() -> AsyncIOMotorDatabase:
    global _db
    if _db is None:
        settings = get_settings()
        _db = get_client()[settings.DB_NAME]
    return _db


def get_collection(name: str):
    return get_db()[name]


async def init_indexes() -> None:
    """Create required indexes. Idempotent.

    Only primary keys are unique: uniqueness of URLs and CIDR non-overlap
    are enforced by the provisioning layer, not by the store.
    """
    settings = get_settings()
    db = get_db()

    # Tenants: primary key, cascade/list lookups
    await db[settings.TENANTS_COLLECTION].create_index("tenant_id", unique=True)
    await db[settings.TENANTS_COLLECTION].create_index("status")

    # Clusters: primary key, available-cluster lookups
    await db[settings.CLUSTERS_COLLECTION].create_index("cluster_id", unique=True)
    await db[settings.CLUSTERS_COLLECTION].create_index([("type", 1), ("status", 1)])

    # Subscriptions: primary key, per-tenant cascade enumeration
    await db[settings.SUBSCRIPTIONS_COLLECTION].create_index("subscription_id", unique=True)
    await db[settings.SUBSCRIPTIONS_COLLECTION].create_index("tenant_id")

    # Landlord: keyed by subscription id
    await db[settings.LANDLORD_COLLECTION].create_index("id", unique=True)

    # Catalog: integer primary keys, active-entry listing
    await db[settings.PACKAGES_COLLECTION].create_index("package_id", unique=True)
    await db[settings.PACKAGES_COLLECTION].create_index("active")
    await db[settings.SUBSCRIPTION_TYPES_COLLECTION].create_index("subscription_type_id", unique=True)
    await db[settings.SUBSCRIPTION_TYPES_COLLECTION].create_index("active")

    # Reservations use _id as the claim key; only the owner lookup needs an index
    await db[settings.RESERVATIONS_COLLECTION].create_index("owner_id")

    # Audit events: replay queries
    await db[settings.AUDIT_COLLECTION].create_index([("event_type", 1), ("timestamp", -1)])
    await db[settings.AUDIT_COLLECTION].create_index([("tenant_id", 1), ("timestamp", -1)])

    logger.info("MongoDB indexes initialized")


async def close_db() -> None:
    global _client, _db
    if _client:
        _client.close()
        _client = None
        _db = None
        logger.info("MongoDB connection closed")
