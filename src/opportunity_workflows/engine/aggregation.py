"""Read-only enrichment of progress records with customer details.

Two listings use this module. The per-user listing asks the CRM about every
opportunity. The admin listing first consults the local records (survey,
calculator, workflow payloads) in batch and only falls back to the CRM for
opportunities none of them can name.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from opportunity_workflows.core.models import CustomerInfo, EnrichedProgressData
from opportunity_workflows.engine.customers import (
    DEFAULT_RESOLVERS,
    CustomerSources,
    address_from_opportunity,
    customer_name_from_opportunity,
    fallback_customer_name,
    resolve_customer,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from opportunity_workflows.config import Collaborators, EngineSettings
    from opportunity_workflows.core.models import OpportunityRecord, ProgressData, UserRecord
    from opportunity_workflows.engine.customers import CustomerResolver

__all__ = ["AdminAggregationView", "CRMEnricher"]

logger = logging.getLogger(__name__)


class CRMEnricher:
    """Decorate progress records with CRM opportunity details."""

    def __init__(self, collaborators: Collaborators, settings: EngineSettings) -> None:
        self.collaborators = collaborators
        self.settings = settings
        self._limit = asyncio.Semaphore(settings.max_concurrent_crm_fetches)

    async def fetch(self, opportunity_id: str) -> OpportunityRecord | None:
        """Fetch an opportunity, returning None on any CRM failure.

        At most ``max_concurrent_crm_fetches`` lookups are in flight at once.
        """
        crm = self.collaborators.crm
        if crm is None:
            return None
        try:
            async with self._limit:
                return await crm.fetch_opportunity(opportunity_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to fetch opportunity details for %s: %s", opportunity_id, exc)
            return None

    def placeholder(self, progress: ProgressData) -> EnrichedProgressData:
        return EnrichedProgressData(
            progress=progress,
            customer=CustomerInfo(
                name=fallback_customer_name(progress.opportunity_id),
                address=self.settings.placeholder_address,
                source="placeholder",
            ),
        )

    def from_record(self, progress: ProgressData, record: OpportunityRecord) -> EnrichedProgressData:
        contact = record.contact
        postcode = None
        if contact and contact.addresses:
            postcode = contact.addresses[0].postal_code
        return EnrichedProgressData(
            progress=progress,
            customer=CustomerInfo(
                name=customer_name_from_opportunity(record, progress.opportunity_id),
                address=address_from_opportunity(record, self.settings.placeholder_address),
                postcode=postcode,
                source="crm",
            ),
            email=contact.email if contact else None,
            phone=contact.phone if contact else None,
            monetary_value=record.monetary_value,
            stage_name=record.stage_name,
        )

    async def enrich(self, progress: ProgressData) -> EnrichedProgressData:
        """Enrich one progress record, degrading to a placeholder customer."""
        record = await self.fetch(progress.opportunity_id)
        if record is None:
            return self.placeholder(progress)
        return self.from_record(progress, record)

    async def enrich_many(self, records: Sequence[ProgressData]) -> list[EnrichedProgressData]:
        return list(await asyncio.gather(*(self.enrich(progress) for progress in records)))


class AdminAggregationView:
    """Build the cross-user admin listing.

    For every progress record the customer is resolved through the resolver
    chain (survey, then calculator, then workflow payloads). Opportunities the
    chain cannot name get a single CRM lookup. A failure while enriching one
    record degrades that record to a placeholder customer.

    Attributes:
        collaborators: External systems used for lookups.
        settings: Engine settings.
        resolvers: Customer resolvers in priority order.
    """

    def __init__(
        self,
        collaborators: Collaborators,
        settings: EngineSettings,
        resolvers: Sequence[CustomerResolver] = DEFAULT_RESOLVERS,
    ) -> None:
        self.collaborators = collaborators
        self.settings = settings
        self.resolvers = tuple(resolvers)
        self.crm = CRMEnricher(collaborators, settings)

    async def build(self, records: Sequence[ProgressData]) -> list[EnrichedProgressData]:
        """Enrich a list of progress records.

        Args:
            records: Progress records to enrich. They are never modified.

        Returns:
            Enriched records in the same order.
        """
        if not records:
            return []

        opportunity_ids = [progress.opportunity_id for progress in records]
        sources, owners = await asyncio.gather(
            self._load_sources(opportunity_ids, records),
            self._load_owners({progress.user_id for progress in records}),
        )

        enriched = await asyncio.gather(*(self._enrich(progress, sources) for progress in records))
        for item in enriched:
            item.owner = owners.get(item.progress.user_id)
        return list(enriched)

    async def _enrich(self, progress: ProgressData, sources: CustomerSources) -> EnrichedProgressData:
        opportunity_id = progress.opportunity_id
        try:
            customer = resolve_customer(opportunity_id, sources, self.resolvers)
            if customer is not None and customer.name:
                if not customer.address:
                    customer.address = self.settings.placeholder_address
                return EnrichedProgressData(progress=progress, customer=customer)

            record = await self.crm.fetch(opportunity_id)
            if record is None:
                return self.crm.placeholder(progress)
            return self.crm.from_record(progress, record)
        except Exception:
            logger.exception("Failed to enrich workflow for opportunity %s", opportunity_id)
            return self.crm.placeholder(progress)

    async def _load_sources(self, opportunity_ids: list[str], records: Sequence[ProgressData]) -> CustomerSources:
        surveys_source = self.collaborators.surveys
        calculators_source = self.collaborators.calculators

        surveys = {}
        if surveys_source is not None:
            try:
                surveys = dict(await surveys_source.get_many(opportunity_ids))
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to fetch survey records in batch: %s", exc)

        calculators = {}
        if calculators_source is not None:
            try:
                calculators = dict(await calculators_source.get_many(opportunity_ids))
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to fetch calculator records in batch: %s", exc)

        return CustomerSources(
            surveys=surveys,
            calculators=calculators,
            progress={progress.opportunity_id: progress for progress in records},
        )

    async def _load_owners(self, user_ids: set[str]) -> dict[str, UserRecord]:
        owners: dict[str, UserRecord] = {}
        for user_id in sorted(user_ids):
            try:
                user = await self.collaborators.users.get_user(user_id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to load workflow owner %s: %s", user_id, exc)
                continue
            if user is not None:
                owners[user_id] = user
        return owners
