"""Web API for opportunity workflows.

This module provides the Litestar controllers, DTOs and exception handlers
registered by :class:`~opportunity_workflows.plugin.OpportunityWorkflowPlugin`.
"""

from __future__ import annotations

from opportunity_workflows.web.controllers import AdminWorkflowController, OpportunityWorkflowController
from opportunity_workflows.web.exceptions import error_code, not_found_handler, validation_error_handler

__all__ = [
    "AdminWorkflowController",
    "OpportunityWorkflowController",
    "error_code",
    "not_found_handler",
    "validation_error_handler",
]
