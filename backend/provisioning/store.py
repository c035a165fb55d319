"""Entity Store Adapter — schema-guarded access to the entity collections.

The backing store offers single-document atomicity only: no multi-document
transactions and no uniqueness beyond each collection's key index.
Every record is validated before it is written and again when it is read
back. A stored document that no longer validates is reported as store
corruption (InternalError) and is never repaired here.
"""
import logging
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from config.settings import get_settings
from core.database import get_collection
from core.exceptions import ConflictError, InternalError, NotFoundError, ValidationError
from schemas.base import StoredRecord, utcnow
from schemas.catalog import Package, SubscriptionType
from schemas.cluster import Cluster
from schemas.landlord import Landlord
from schemas.subscription import Subscription
from schemas.tenant import Tenant

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=StoredRecord)


class EntityStore(Generic[R]):
    """get/put/insert/update/scan/delete over one collection keyed by ``key``."""

    def __init__(self, collection_setting: str, key: str, model: Type[R]):
        self.collection_setting = collection_setting
        self.key = key
        self.model = model

    @property
    def name(self) -> str:
        return getattr(get_settings(), self.collection_setting)

    def _collection(self):
        return get_collection(self.name)

    def _load(self, doc: Dict[str, Any]) -> R:
        doc.pop("_id", None)
        try:
            return self.model.model_validate(doc)
        except PydanticValidationError as e:
            logger.error(
                "Store corruption: collection=%s key=%s errors=%d",
                self.name, doc.get(self.key), e.error_count(),
            )
            raise InternalError(
                f"Stored {self.model.__name__} failed validation",
                details={"collection": self.name, self.key: doc.get(self.key)},
            ) from e

    def _validate(self, data: Dict[str, Any]) -> R:
        try:
            return self.model.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid {self.model.__name__} record",
                details={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
            ) from e

    async def get(self, key_value: Any) -> Optional[R]:
        doc = await self._collection().find_one({self.key: key_value})
        if doc is None:
            return None
        return self._load(doc)

    async def put(self, record: R) -> R:
        """Overwrite by primary key. Idempotent for a given record."""
        record = self._validate(record.model_dump())
        key_value = getattr(record, self.key)
        await self._collection().replace_one(
            {self.key: key_value}, record.to_doc(), upsert=True,
        )
        stored = await self.get(key_value)
        if stored is None:
            raise InternalError(
                f"{self.model.__name__} vanished after write",
                details={"collection": self.name, self.key: key_value},
            )
        return stored

    async def insert(self, record: R) -> R:
        """Write a new record. An existing key raises ConflictError."""
        record = self._validate(record.model_dump())
        key_value = getattr(record, self.key)
        try:
            await self._collection().insert_one(record.to_doc())
        except DuplicateKeyError as e:
            raise ConflictError(
                f"{self.model.__name__} already exists",
                conflicts=[str(key_value)],
                details={self.key: key_value},
            ) from e
        return await self.get(key_value)

    async def update(self, key_value: Any, fields: Dict[str, Any]) -> R:
        """Apply a partial update and return the new record.

        The merged record must validate before the write. Only the given
        fields (plus ``updated_at``) are written, as one atomic $set.
        """
        current = await self.get(key_value)
        if current is None:
            raise NotFoundError(
                f"{self.model.__name__} not found",
                details={self.key: key_value},
            )
        fields = {**fields, "updated_at": utcnow()}
        candidate = self._validate({**current.model_dump(), **fields})
        candidate_doc = candidate.to_doc()
        doc = await self._collection().find_one_and_update(
            {self.key: key_value},
            {"$set": {k: candidate_doc[k] for k in fields}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise NotFoundError(
                f"{self.model.__name__} not found",
                details={self.key: key_value},
            )
        return self._load(doc)

    async def scan(self, query: Optional[Dict[str, Any]] = None) -> List[R]:
        cursor = self._collection().find(query or {})
        return [self._load(doc) async for doc in cursor]

    async def delete(self, key_value: Any) -> bool:
        result = await self._collection().delete_one({self.key: key_value})
        return result.deleted_count > 0


tenants: EntityStore[Tenant] = EntityStore("TENANTS_COLLECTION", "tenant_id", Tenant)
clusters: EntityStore[Cluster] = EntityStore("CLUSTERS_COLLECTION", "cluster_id", Cluster)
subscriptions: EntityStore[Subscription] = EntityStore(
    "SUBSCRIPTIONS_COLLECTION", "subscription_id", Subscription,
)
landlords: EntityStore[Landlord] = EntityStore("LANDLORD_COLLECTION", "id", Landlord)
packages: EntityStore[Package] = EntityStore("PACKAGES_COLLECTION", "package_id", Package)
subscription_types: EntityStore[SubscriptionType] = EntityStore(
    "SUBSCRIPTION_TYPES_COLLECTION", "subscription_type_id", SubscriptionType,
)
