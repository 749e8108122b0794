"""
Blob store primitive the repositories are built on.

The contract is deliberately narrow, matching what S3-style object stores
offer: exact-key get/put/delete and a paginated prefix listing. There are no
transactions, no cross-key atomicity, and listings are not promised to come
back sorted.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from shared.logging import get_logger

logger = get_logger(__name__)


class ObjectStoreError(Exception):
    """Any failure of the underlying store other than the cases below."""


class ObjectNotFound(ObjectStoreError):
    def __init__(self, key: str):
        super().__init__(f"NoSuchKey: {key}")
        self.key = key


class ObjectExists(ObjectStoreError):
    """Raised by a conditional put when the key is already taken."""

    def __init__(self, key: str):
        super().__init__(f"Key already exists: {key}")
        self.key = key


@dataclass
class ListPage:
    keys: List[str] = field(default_factory=list)
    next_token: Optional[str] = None


class ObjectStore(ABC):
    """Abstract key/blob store scoped to one bucket."""

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Returns the stored body. Raises ObjectNotFound if the key is absent."""
        raise NotImplementedError

    @abstractmethod
    async def put(self, key: str, body: bytes, content_type: str = "application/json", if_none_match: bool = False) -> None:
        """Stores body under key. With if_none_match, raises ObjectExists instead of overwriting."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Deletes key. Deleting an absent key is not an error."""
        raise NotImplementedError

    @abstractmethod
    async def list_keys(
        self,
        prefix: str,
        start_after: Optional[str] = None,
        continuation_token: Optional[str] = None,
        max_keys: int = 1000,
    ) -> ListPage:
        """Returns up to max_keys keys under prefix, plus a token for the next page if there is one."""
        raise NotImplementedError


class InMemoryObjectStore(ObjectStore):
    """
    Dict-backed store for tests and local development.
    Listings come back in insertion order, not key order.
    """

    def __init__(self, bucket: str = "memory"):
        self.bucket = bucket
        self._objects: Dict[str, Tuple[bytes, str]] = {}

    async def get(self, key: str) -> bytes:
        try:
            return self._objects[key][0]
        except KeyError:
            raise ObjectNotFound(key) from None

    async def put(self, key: str, body: bytes, content_type: str = "application/json", if_none_match: bool = False) -> None:
        if if_none_match and key in self._objects:
            raise ObjectExists(key)
        self._objects[key] = (bytes(body), content_type)

    async def delete(self, key: str) -> None:
        self._objects.pop(key, None)

    async def list_keys(
        self,
        prefix: str,
        start_after: Optional[str] = None,
        continuation_token: Optional[str] = None,
        max_keys: int = 1000,
    ) -> ListPage:
        matching = [
            key for key in self._objects
            if key.startswith(prefix) and (start_after is None or key > start_after)
        ]
        offset = int(continuation_token) if continuation_token else 0
        page = matching[offset:offset + max_keys]
        next_offset = offset + len(page)
        next_token = str(next_offset) if next_offset < len(matching) else None
        logger.debug(f"Listed {len(page)} keys under '{prefix}' in bucket {self.bucket}")
        return ListPage(keys=page, next_token=next_token)
