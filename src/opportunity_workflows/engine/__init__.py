"""Engine services for opportunity-workflows.

This module exports identity resolution, the side-effect dispatcher, working
file cleanup and the customer-enrichment services used by the listings.
"""

from __future__ import annotations

from opportunity_workflows.engine.aggregation import AdminAggregationView, CRMEnricher
from opportunity_workflows.engine.cleanup import WorkingFileCleaner
from opportunity_workflows.engine.customers import CustomerSources, resolve_customer
from opportunity_workflows.engine.dispatcher import SideEffectDispatcher, SkipSideEffect
from opportunity_workflows.engine.identity import IdentityResolver

__all__ = [
    "AdminAggregationView",
    "CRMEnricher",
    "CustomerSources",
    "IdentityResolver",
    "SideEffectDispatcher",
    "SkipSideEffect",
    "WorkingFileCleaner",
    "resolve_customer",
]
