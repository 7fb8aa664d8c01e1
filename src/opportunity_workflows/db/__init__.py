"""Database persistence layer for opportunity-workflows.

This module provides SQLAlchemy models, repositories and the persistent
transition engine.
"""

from __future__ import annotations

from opportunity_workflows.db.engine import OpportunityWorkflowEngine, progress_to_data
from opportunity_workflows.db.models import ProgressModel, StepModel
from opportunity_workflows.db.repositories import ProgressRepository, StepRepository

__all__ = [
    "OpportunityWorkflowEngine",
    "ProgressModel",
    "ProgressRepository",
    "StepModel",
    "StepRepository",
    "progress_to_data",
]
