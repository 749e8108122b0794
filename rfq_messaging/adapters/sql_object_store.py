from typing import Optional

from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from shared.logging import get_logger
from shared.models_db import StoredObject
from .object_store import ListPage, ObjectExists, ObjectNotFound, ObjectStore, ObjectStoreError

logger = get_logger(__name__)


class SQLObjectStore(ObjectStore):
    """
    Object store backed by the stored_object table.

    Each call opens its own short-lived session from the shared factory, so one
    instance can serve concurrent requests.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], bucket: str):
        self.session_factory = session_factory
        self.bucket = bucket

    async def get(self, key: str) -> bytes:
        try:
            async with self.session_factory() as session:
                obj = await session.get(StoredObject, (self.bucket, key))
        except SQLAlchemyError as e:
            raise ObjectStoreError(f"Failed to get '{key}' from bucket {self.bucket}: {e}") from e
        if obj is None:
            raise ObjectNotFound(key)
        return obj.body

    async def put(self, key: str, body: bytes, content_type: str = "application/json", if_none_match: bool = False) -> None:
        try:
            async with self.session_factory() as session:
                if if_none_match:
                    session.add(StoredObject(bucket=self.bucket, key=key, body=body, content_type=content_type))
                else:
                    await session.merge(StoredObject(bucket=self.bucket, key=key, body=body, content_type=content_type))
                await session.commit()
        except IntegrityError as e:
            if if_none_match:
                raise ObjectExists(key) from e
            raise ObjectStoreError(f"Failed to put '{key}' into bucket {self.bucket}: {e}") from e
        except SQLAlchemyError as e:
            raise ObjectStoreError(f"Failed to put '{key}' into bucket {self.bucket}: {e}") from e
        logger.debug(f"Stored {len(body)} bytes under '{key}' in bucket {self.bucket}")

    async def delete(self, key: str) -> None:
        try:
            async with self.session_factory() as session:
                await session.execute(
                    sa_delete(StoredObject).where(StoredObject.bucket == self.bucket, StoredObject.key == key)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise ObjectStoreError(f"Failed to delete '{key}' from bucket {self.bucket}: {e}") from e

    async def list_keys(
        self,
        prefix: str,
        start_after: Optional[str] = None,
        continuation_token: Optional[str] = None,
        max_keys: int = 1000,
    ) -> ListPage:
        statement = select(StoredObject.key).where(
            StoredObject.bucket == self.bucket,
            StoredObject.key.startswith(prefix, autoescape=True),
        )
        # The token is the last key of the previous page, which already lies past start_after
        lower_bound = continuation_token or start_after
        if lower_bound is not None:
            statement = statement.where(StoredObject.key > lower_bound)
        statement = statement.order_by(StoredObject.key).limit(max_keys)
        try:
            async with self.session_factory() as session:
                result = await session.execute(statement)
                scanned = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise ObjectStoreError(f"Failed to list '{prefix}' in bucket {self.bucket}: {e}") from e

        next_token = scanned[-1] if len(scanned) == max_keys else None
        # LIKE is case-insensitive on some backends; keep only exact prefix matches
        keys = [key for key in scanned if key.startswith(prefix)]
        return ListPage(keys=keys, next_token=next_token)
