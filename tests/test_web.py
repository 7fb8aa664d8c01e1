"""Tests for the REST API registered by the OpportunityWorkflowPlugin.

The plugin builds the engine from a ``db_session`` dependency, which these
tests provide from the in-memory SQLite session fixture.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING

import pytest
from litestar import Litestar, get
from litestar.di import Provide
from litestar.handlers import HTTPRouteHandler
from litestar.params import HeaderParameter
from litestar.status_codes import (
    HTTP_200_OK,
    HTTP_201_CREATED,
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
)
from litestar.testing import AsyncTestClient

from opportunity_workflows import OpportunityWorkflowEngine, OpportunityWorkflowPlugin, OpportunityWorkflowPluginConfig
from opportunity_workflows.web.controllers import USER_REF_HEADER, AdminWorkflowController, OpportunityWorkflowController

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from opportunity_workflows.config import Collaborators, EngineSettings
    from tests.conftest import FakeCRM, FakeOutcomes

ALICE = {"X-User-Ref": "ext-alice"}
BOB = {"X-User-Ref": "ext-bob"}
PREFIX = "/opportunity-workflow"


@get("/custom/step-count")
async def step_count(workflow_engine: OpportunityWorkflowEngine) -> dict[str, int]:
    return {"steps": len(workflow_engine.list_step_templates())}


def create_test_app(session: AsyncSession, config: OpportunityWorkflowPluginConfig) -> Litestar:
    """Create a Litestar app with the plugin and a fixed database session."""
    return Litestar(
        route_handlers=[step_count],
        plugins=[OpportunityWorkflowPlugin(config=config)],
        dependencies={"db_session": Provide(lambda: session, sync_to_thread=False)},
    )


@pytest.fixture
def app(async_session: AsyncSession, collaborators: Collaborators, settings: EngineSettings) -> Litestar:
    return create_test_app(
        async_session,
        OpportunityWorkflowPluginConfig(collaborators=collaborators, settings=settings),
    )


@pytest.mark.integration
@pytest.mark.asyncio
class TestWorkflowEndpoints:
    """Tests for the per-opportunity endpoints."""

    async def test_list_steps(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            response = await client.get(f"{PREFIX}/steps")

            assert response.status_code == HTTP_200_OK
            data = response.json()
            assert len(data) == 12
            assert data[0]["kind"] == "SITE_SURVEY"
            assert data[3]["title"] == "Proposal"

    async def test_start_and_get(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            response = await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-1"}, headers=ALICE)

            assert response.status_code == HTTP_201_CREATED
            started = response.json()
            assert started["opportunity_id"] == "opp-1"
            assert started["user_id"] == "user-alice"
            assert started["current_step"] == 1
            assert started["status"] == "IN_PROGRESS"
            assert [s["status"] for s in started["steps"][:2]] == ["IN_PROGRESS", "PENDING"]

            response = await client.get(f"{PREFIX}/progress/opp-1", headers=ALICE)

            assert response.status_code == HTTP_200_OK
            assert response.json()["id"] == started["id"]

    async def test_missing_user_header(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            response = await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-1"})

            assert response.status_code == HTTP_400_BAD_REQUEST

    async def test_unknown_user(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            response = await client.post(
                f"{PREFIX}/start",
                json={"opportunity_id": "opp-1"},
                headers={"X-User-Ref": "ext-nobody"},
            )

            assert response.status_code == HTTP_404_NOT_FOUND
            assert response.json()["error"] == "unresolved_identity"

    async def test_progress_not_found(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            response = await client.get(f"{PREFIX}/progress/opp-missing", headers=ALICE)

            assert response.status_code == HTTP_404_NOT_FOUND
            assert response.json() == {
                "error": "progress_not_found",
                "message": "Workflow progress for opportunity 'opp-missing' not found",
            }

    async def test_complete_step(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-1"}, headers=ALICE)

            response = await client.post(
                f"{PREFIX}/progress/opp-1/complete-step",
                json={"step_number": 1, "data": {"surveyId": "s-1"}},
                headers=ALICE,
            )

            assert response.status_code == HTTP_200_OK
            data = response.json()
            assert data["current_step"] == 2
            assert data["steps"][0]["status"] == "COMPLETED"
            assert data["steps"][0]["data"] == {"surveyId": "s-1"}

    async def test_complete_step_out_of_range(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-1"}, headers=ALICE)

            response = await client.post(
                f"{PREFIX}/progress/opp-1/complete-step",
                json={"step_number": 13},
                headers=ALICE,
            )

            assert response.status_code == HTTP_400_BAD_REQUEST
            assert response.json()["error"] == "step_out_of_range"

    async def test_won_outcome(self, app: Litestar, outcomes: FakeOutcomes, crm: FakeCRM) -> None:
        async with AsyncTestClient(app=app) as client:
            await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-1"}, headers=ALICE)

            response = await client.post(
                f"{PREFIX}/progress/opp-1/complete-step",
                json={"step_number": 12, "data": {"outcome": "Won", "dealValue": 9000}},
                headers=ALICE,
            )

            assert response.status_code == HTTP_200_OK
            assert response.json()["status"] == "COMPLETED"
            assert outcomes.calls[0].value == 9000.0
            assert crm.transitions == [("opp-1", "Signed Contract")]

    async def test_invalid_outcome(self, app: Litestar, outcomes: FakeOutcomes) -> None:
        async with AsyncTestClient(app=app) as client:
            await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-1"}, headers=ALICE)

            response = await client.post(
                f"{PREFIX}/progress/opp-1/complete-step",
                json={"step_number": 12, "data": {"outcome": "postponed"}},
                headers=ALICE,
            )

            assert response.status_code == HTTP_400_BAD_REQUEST
            assert response.json()["error"] == "invalid_outcome"
            assert outcomes.calls == []

    async def test_update_step(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-1"}, headers=ALICE)

            response = await client.put(
                f"{PREFIX}/progress/opp-1/step",
                json={"step_number": 3, "status": "IN_PROGRESS", "data": {"tariff": "flux"}},
                headers=ALICE,
            )

            assert response.status_code == HTTP_200_OK
            data = response.json()
            assert data["current_step"] == 1
            assert data["steps"][2]["status"] == "IN_PROGRESS"
            assert data["steps"][2]["data"] == {"tariff": "flux"}

    async def test_update_step_invalid_status(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-1"}, headers=ALICE)

            response = await client.put(
                f"{PREFIX}/progress/opp-1/step",
                json={"step_number": 3, "status": "DONE"},
                headers=ALICE,
            )

            assert response.status_code == HTTP_400_BAD_REQUEST

    async def test_reset(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-1"}, headers=ALICE)
            await client.post(f"{PREFIX}/progress/opp-1/complete-step", json={"step_number": 1}, headers=ALICE)

            response = await client.put(f"{PREFIX}/progress/opp-1/reset", headers=ALICE)

            assert response.status_code == HTTP_200_OK
            assert response.json()["current_step"] == 1

    async def test_pause_resume_cancel(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-1"}, headers=ALICE)

            response = await client.post(f"{PREFIX}/progress/opp-1/pause", headers=ALICE)
            assert response.status_code == HTTP_200_OK
            assert response.json()["status"] == "PAUSED"

            response = await client.post(f"{PREFIX}/progress/opp-1/resume", headers=ALICE)
            assert response.json()["status"] == "IN_PROGRESS"

            response = await client.post(f"{PREFIX}/progress/opp-1/pause", headers=BOB)
            assert response.status_code == HTTP_404_NOT_FOUND

            response = await client.post(
                f"{PREFIX}/progress/opp-1/cancel",
                json={"reason": "went with a competitor"},
                headers=ALICE,
            )
            assert response.status_code == HTTP_200_OK
            assert response.json()["status"] == "CANCELLED"

            response = await client.post(
                f"{PREFIX}/progress/opp-1/complete-step",
                json={"step_number": 2},
                headers=ALICE,
            )
            assert response.status_code == HTTP_400_BAD_REQUEST
            assert response.json()["error"] == "progress_closed"

    async def test_list_user_workflows(self, app: Litestar, crm: FakeCRM, make_opportunity) -> None:
        crm.records["opp-1"] = make_opportunity("opp-1")

        async with AsyncTestClient(app=app) as client:
            await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-1"}, headers=ALICE)
            await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-2"}, headers=BOB)

            response = await client.get(f"{PREFIX}/user/progress", headers=ALICE)

            assert response.status_code == HTTP_200_OK
            data = response.json()
            assert len(data) == 1
            assert data[0]["progress"]["opportunity_id"] == "opp-1"
            assert data[0]["opportunity_details"]["customer_name"] == "Lisa Jones"
            assert data[0]["opportunity_details"]["postcode"] == "N12 9JA"
            assert data[0]["owner"]["id"] == "user-alice"


@pytest.mark.integration
@pytest.mark.asyncio
class TestAdminEndpoints:
    """Tests for the admin endpoints."""

    async def test_list_all(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            for opportunity_id, headers in (("opp-1", ALICE), ("opp-2", BOB), ("opp-3", BOB)):
                await client.post(f"{PREFIX}/start", json={"opportunity_id": opportunity_id}, headers=headers)

            response = await client.get(f"{PREFIX}/admin/progress", params={"limit": 2, "offset": 0})

            assert response.status_code == HTTP_200_OK
            data = response.json()
            assert data["total"] == 3
            assert data["limit"] == 2
            assert len(data["items"]) == 2
            assert all(item["opportunity_details"]["customer_name"].startswith("Customer ") for item in data["items"])

    async def test_list_all_status_filter(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-1"}, headers=ALICE)
            await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-2"}, headers=ALICE)
            await client.post(f"{PREFIX}/progress/opp-2/pause", headers=ALICE)

            response = await client.get(f"{PREFIX}/admin/progress", params={"status": "PAUSED"})

            data = response.json()
            assert data["total"] == 1
            assert data["items"][0]["progress"]["opportunity_id"] == "opp-2"
            assert data["items"][0]["owner"]["name"] == "Alice"

    async def test_list_all_rejects_bad_limit(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            response = await client.get(f"{PREFIX}/admin/progress", params={"limit": 0})

            assert response.status_code == HTTP_400_BAD_REQUEST

    async def test_clear_all(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-1"}, headers=ALICE)
            await client.post(f"{PREFIX}/start", json={"opportunity_id": "opp-2"}, headers=BOB)

            response = await client.delete(f"{PREFIX}/admin/clear-all", headers=ALICE)

            assert response.status_code == HTTP_200_OK
            assert response.json() == {"deleted": 1}
            assert (await client.get(f"{PREFIX}/progress/opp-1", headers=ALICE)).status_code == HTTP_404_NOT_FOUND
            assert (await client.get(f"{PREFIX}/progress/opp-2", headers=BOB)).status_code == HTTP_200_OK


@pytest.mark.integration
@pytest.mark.asyncio
class TestPluginConfig:
    """Tests for plugin configuration options."""

    async def test_engine_is_injected(self, app: Litestar) -> None:
        async with AsyncTestClient(app=app) as client:
            response = await client.get("/custom/step-count")

            assert response.json() == {"steps": 12}

    async def test_api_disabled(self, async_session: AsyncSession, collaborators: Collaborators) -> None:
        app = create_test_app(
            async_session,
            OpportunityWorkflowPluginConfig(collaborators=collaborators, enable_api=False),
        )

        async with AsyncTestClient(app=app) as client:
            assert (await client.get(f"{PREFIX}/steps")).status_code == HTTP_404_NOT_FOUND
            assert (await client.get("/custom/step-count")).json() == {"steps": 12}

    async def test_custom_prefix(self, async_session: AsyncSession, collaborators: Collaborators) -> None:
        app = create_test_app(
            async_session,
            OpportunityWorkflowPluginConfig(collaborators=collaborators, api_path_prefix="/api/sales"),
        )

        async with AsyncTestClient(app=app) as client:
            assert (await client.get("/api/sales/steps")).status_code == HTTP_200_OK
            assert (await client.get("/api/sales/admin/progress")).status_code == HTTP_200_OK

    async def test_admin_guards(self, async_session: AsyncSession, collaborators: Collaborators) -> None:
        from litestar.exceptions import NotAuthorizedException

        def deny(connection, _handler) -> None:
            raise NotAuthorizedException("admins only")

        app = create_test_app(
            async_session,
            OpportunityWorkflowPluginConfig(collaborators=collaborators, admin_guards=[deny]),
        )

        async with AsyncTestClient(app=app) as client:
            assert (await client.get(f"{PREFIX}/admin/progress")).status_code == 401
            assert (await client.get(f"{PREFIX}/steps")).status_code == HTTP_200_OK


@pytest.mark.unit
class TestUserHeader:
    """Tests for how handlers declare the caller header."""

    @pytest.mark.parametrize("controller", [OpportunityWorkflowController, AdminWorkflowController])
    def test_user_ref_is_header_parameter(self, controller: type) -> None:
        handlers = [h for h in vars(controller).values() if isinstance(h, HTTPRouteHandler)]
        defaults = [
            inspect.signature(h.fn).parameters["user_ref"].default
            for h in handlers
            if "user_ref" in inspect.signature(h.fn).parameters
        ]

        assert defaults
        for default in defaults:
            assert isinstance(default, HeaderParameter)
            assert default.name == USER_REF_HEADER
            assert default.header is None
