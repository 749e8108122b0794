from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List

from rfq_messaging.events import MessageEvent, RfqEvent
from rfq_messaging.models import CategorySlice, ManufacturerProfile, RfqIndex, RfqMeta
from rfq_messaging.value_objects import ManufacturerId, RfqId

class AbstractRfqRepository(ABC):
    """Storage of RFQ snapshots, indexes and events. Performs exactly the writes it is told to."""

    @abstractmethod
    async def save_rfq_meta(self, rfq: RfqMeta) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_rfq_meta(self, rfq_id: RfqId) -> Optional[RfqMeta]:
        """Returns None when the RFQ does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def save_rfq_index(self, rfq_id: RfqId, index: RfqIndex) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_rfq_index(self, rfq_id: RfqId) -> Optional[RfqIndex]:
        raise NotImplementedError

    @abstractmethod
    async def save_rfq_event(self, event: RfqEvent) -> None:
        """Persists one event under its own key. Events are never overwritten."""
        raise NotImplementedError

    @abstractmethod
    async def list_rfq_events(self, rfq_id: RfqId, since: Optional[datetime] = None, limit: Optional[int] = None) -> List[RfqEvent]:
        """Events strictly after `since`, ordered by (ts, id), at most the hard page cap."""
        raise NotImplementedError

class AbstractManufacturerRepository(ABC):

    @abstractmethod
    async def save_manufacturer(self, manufacturer: ManufacturerProfile) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_manufacturer(self, manufacturer_id: ManufacturerId) -> Optional[ManufacturerProfile]:
        raise NotImplementedError

class AbstractCatalogRepository(ABC):

    @abstractmethod
    async def save_category_slice(self, category_slice: CategorySlice) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_category_slice(self, category: str) -> Optional[CategorySlice]:
        raise NotImplementedError

    @abstractmethod
    async def save_category_state_slice(self, category: str, state: str, category_slice: CategorySlice) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_category_state_slice(self, category: str, state: str) -> Optional[CategorySlice]:
        raise NotImplementedError

class AbstractNotificationSender(ABC):
    """Outgoing participant notifications. Callers treat failures as non-fatal."""

    @abstractmethod
    async def notify_rfq_created(self, rfq: RfqMeta) -> None:
        raise NotImplementedError

    @abstractmethod
    async def notify_new_message(self, rfq: RfqMeta, event: MessageEvent) -> None:
        raise NotImplementedError

class AbstractIdempotencyStore(ABC):

    @abstractmethod
    async def check(self, key: str, body_hash: str) -> Optional[str]:
        """
        Returns the cached serialized response for key, or None if there is none.
        Raises Conflict if key was stored with a different body hash.
        """
        raise NotImplementedError

    @abstractmethod
    async def store(self, key: str, body_hash: str, response: str) -> None:
        raise NotImplementedError
