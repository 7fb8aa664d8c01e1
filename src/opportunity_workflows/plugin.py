"""Litestar plugin for opportunity workflow integration.

This module provides the OpportunityWorkflowPlugin, which wires the workflow
engine into a Litestar application and registers the REST API.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from litestar.di import Provide
from litestar.plugins import InitPluginProtocol
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: TC002 - needed for DI

from opportunity_workflows.config import EngineSettings
from opportunity_workflows.core.definition import DEFAULT_WORKFLOW
from opportunity_workflows.db.engine import OpportunityWorkflowEngine

if TYPE_CHECKING:
    from litestar.config.app import AppConfig

    from opportunity_workflows.config import Collaborators
    from opportunity_workflows.core.definition import WorkflowDefinition

__all__ = ["OpportunityWorkflowPlugin", "OpportunityWorkflowPluginConfig"]


@dataclass
class OpportunityWorkflowPluginConfig:
    """Configuration for the OpportunityWorkflowPlugin.

    Attributes:
        collaborators: External systems the engine talks to.
        definition: Workflow definition new workflows are created from.
        settings: Engine settings.
        dependency_key_engine: The key used for dependency injection of the
            engine. Defaults to "workflow_engine".
        enable_api: Whether to enable the REST API endpoints. Defaults to True.
        api_path_prefix: URL path prefix for all workflow API endpoints.
            Defaults to "/opportunity-workflow".
        api_guards: List of Litestar guards to apply to all workflow API endpoints.
        admin_guards: Additional guards applied to the admin endpoints.
        api_tags: OpenAPI tags to apply to workflow API endpoints.
        include_api_in_schema: Whether to include API endpoints in OpenAPI schema.
            Defaults to True.

    Note:
        The engine is built per request from an ``AsyncSession`` injected under
        the ``db_session`` key, as provided by advanced-alchemy's
        ``SQLAlchemyPlugin``.
    """

    collaborators: Collaborators
    definition: WorkflowDefinition = DEFAULT_WORKFLOW
    settings: EngineSettings = field(default_factory=EngineSettings)
    dependency_key_engine: str = "workflow_engine"
    enable_api: bool = True
    api_path_prefix: str = "/opportunity-workflow"
    api_guards: list[Any] = field(default_factory=list)
    admin_guards: list[Any] = field(default_factory=list)
    api_tags: list[str] = field(default_factory=lambda: ["Opportunity Workflow"])
    include_api_in_schema: bool = True


class OpportunityWorkflowPlugin(InitPluginProtocol):
    """Litestar plugin for opportunity workflows.

    Example:
        Basic usage with advanced-alchemy::

            from advanced_alchemy.extensions.litestar import SQLAlchemyAsyncConfig, SQLAlchemyPlugin
            from litestar import Litestar
            from opportunity_workflows import Collaborators, OpportunityWorkflowPlugin
            from opportunity_workflows.plugin import OpportunityWorkflowPluginConfig

            app = Litestar(
                plugins=[
                    SQLAlchemyPlugin(config=SQLAlchemyAsyncConfig(connection_string="sqlite+aiosqlite:///app.db")),
                    OpportunityWorkflowPlugin(
                        config=OpportunityWorkflowPluginConfig(
                            collaborators=Collaborators(users=MyUserDirectory(), crm=MyCRM()),
                        )
                    ),
                ]
            )

        Using the engine in a route handler::

            @post("/quick-start/{opportunity_id:str}")
            async def quick_start(opportunity_id: str, workflow_engine: OpportunityWorkflowEngine) -> dict:
                progress = await workflow_engine.start("system", opportunity_id)
                return {"current_step": progress.current_step}
    """

    __slots__ = ("_config",)

    def __init__(self, config: OpportunityWorkflowPluginConfig) -> None:
        """Initialize the plugin.

        Args:
            config: Configuration for the plugin.
        """
        self._config = config

    @property
    def config(self) -> OpportunityWorkflowPluginConfig:
        return self._config

    def create_engine(self, session: AsyncSession) -> OpportunityWorkflowEngine:
        """Build an engine bound to a session.

        Args:
            session: The request-scoped SQLAlchemy session.

        Returns:
            A configured engine.
        """
        return OpportunityWorkflowEngine(
            session=session,
            collaborators=self._config.collaborators,
            definition=self._config.definition,
            settings=self._config.settings,
        )

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Initialize the plugin when the Litestar app starts.

        This method:
        1. Adds the per-request engine provider to the app config
        2. Optionally registers REST API controllers if enable_api=True

        Args:
            app_config: The Litestar application configuration.

        Returns:
            The modified application configuration.
        """

        async def provide_engine(db_session: AsyncSession) -> OpportunityWorkflowEngine:
            return self.create_engine(db_session)

        app_config.dependencies[self._config.dependency_key_engine] = Provide(provide_engine)

        # Register REST API controllers if enabled
        if self._config.enable_api:
            from litestar import Router

            from opportunity_workflows.exceptions import NotFoundError, WorkflowValidationError
            from opportunity_workflows.web.controllers import AdminWorkflowController, OpportunityWorkflowController
            from opportunity_workflows.web.exceptions import not_found_handler, validation_error_handler

            admin_router = Router(
                path="/",
                route_handlers=[AdminWorkflowController],
                guards=self._config.admin_guards,
            )

            # Create main router with configured options
            workflow_router = Router(
                path=self._config.api_path_prefix,
                route_handlers=[OpportunityWorkflowController, admin_router],
                guards=self._config.api_guards,
                tags=self._config.api_tags,
                include_in_schema=self._config.include_api_in_schema,
            )

            # Register router with app
            app_config.route_handlers.append(workflow_router)

            app_config.exception_handlers[NotFoundError] = not_found_handler  # type: ignore[assignment]
            app_config.exception_handlers[WorkflowValidationError] = validation_error_handler  # type: ignore[assignment]

        return app_config
