from datetime import datetime, timezone
from typing import List, Optional, Set, Tuple

from ..errors import Conflict
from ..models import (
    CatalogManufacturerSummary,
    CategorySlice,
    Location,
    ManufacturerProfile,
    UpsertManufacturerRequest,
    UpsertManufacturerResponse,
)
from ..value_objects import Email, ManufacturerId, TenantId
from .ports import AbstractCatalogRepository, AbstractManufacturerRepository
from shared.logging import get_logger

logger = get_logger(__name__)


def summarize(manufacturer: ManufacturerProfile) -> CatalogManufacturerSummary:
    location = manufacturer.location or Location()
    logo = manufacturer.media[0].image_manifest_id if manufacturer.media else None
    return CatalogManufacturerSummary(
        id=manufacturer.id,
        name=manufacturer.name,
        city=location.city,
        state=location.state,
        categories=list(manufacturer.categories),
        capabilities=manufacturer.capabilities,
        logo=logo,
    )


def _slice_keys(manufacturer: Optional[ManufacturerProfile]) -> Tuple[Set[str], Set[Tuple[str, str]]]:
    if manufacturer is None:
        return set(), set()
    categories = set(manufacturer.categories)
    state = manufacturer.location.state if manufacturer.location else None
    pairs = {(category, state) for category in categories} if state else set()
    return categories, pairs


def merge_into_slice(
    existing: Optional[CategorySlice],
    category: str,
    manufacturer_id: str,
    summary: Optional[CatalogManufacturerSummary],
    generated_at: datetime,
) -> CategorySlice:
    """Replaces (or drops, when summary is None) one manufacturer's entry. Items stay sorted by name."""
    items: List[CatalogManufacturerSummary] = [
        item for item in (existing.items if existing else []) if item.id != manufacturer_id
    ]
    if summary is not None:
        items.append(summary)
    items.sort(key=lambda item: (item.name.lower(), item.id))
    return CategorySlice(category=category, generated_at=generated_at, items=items)


class ManufacturerService:
    """Manufacturer registry plus the precomputed catalog slices that list them."""

    def __init__(self, manufacturer_repository: AbstractManufacturerRepository, catalog_repository: AbstractCatalogRepository):
        self.manufacturer_repository = manufacturer_repository
        self.catalog_repository = catalog_repository

    async def upsert_manufacturer(self, request: UpsertManufacturerRequest) -> UpsertManufacturerResponse:
        tenant_id = TenantId(request.tenant_id)
        contact_email = Email(request.contact_email)
        manufacturer_id = ManufacturerId(request.id) if request.id else ManufacturerId.generate()

        previous = await self.manufacturer_repository.get_manufacturer(manufacturer_id)
        if previous is not None and previous.tenant_id != tenant_id.value:
            raise Conflict("Manufacturer belongs to a different tenant")

        now = datetime.now(timezone.utc)
        profile = ManufacturerProfile(
            id=manufacturer_id.value,
            tenant_id=tenant_id.value,
            name=request.name,
            description=request.description,
            location=Location(**request.location.model_dump()) if request.location else None,
            categories=sorted(set(request.categories)),
            capabilities=request.capabilities,
            contact_email=contact_email.value,
            media=request.media,
            offerings=request.offerings,
            updated_at=now,
        )
        await self.manufacturer_repository.save_manufacturer(profile)
        logger.info(f"{'Updated' if previous else 'Created'} manufacturer {manufacturer_id} for tenant {tenant_id}")

        await self._republish(previous, profile, now)
        return UpsertManufacturerResponse(id=profile.id, tenant_id=profile.tenant_id)

    async def _republish(self, previous: Optional[ManufacturerProfile], current: ManufacturerProfile, now: datetime) -> None:
        old_categories, old_pairs = _slice_keys(previous)
        new_categories, new_pairs = _slice_keys(current)
        summary = summarize(current)

        for category in sorted(old_categories | new_categories):
            existing = await self.catalog_repository.get_category_slice(category)
            entry = summary if category in new_categories else None
            await self.catalog_repository.save_category_slice(
                merge_into_slice(existing, category, current.id, entry, now)
            )

        for category, state in sorted(old_pairs | new_pairs):
            existing = await self.catalog_repository.get_category_state_slice(category, state)
            entry = summary if (category, state) in new_pairs else None
            await self.catalog_repository.save_category_state_slice(
                category, state, merge_into_slice(existing, category, current.id, entry, now)
            )

        logger.info(
            f"Republished {len(old_categories | new_categories)} category and "
            f"{len(old_pairs | new_pairs)} category/state slices for manufacturer {current.id}"
        )

    async def get_manufacturer(self, manufacturer_id: str) -> Optional[ManufacturerProfile]:
        return await self.manufacturer_repository.get_manufacturer(ManufacturerId(manufacturer_id))

    async def get_category(self, category: str, state: Optional[str] = None) -> Optional[CategorySlice]:
        if state:
            return await self.catalog_repository.get_category_state_slice(category, state)
        return await self.catalog_repository.get_category_slice(category)
