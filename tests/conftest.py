from __future__ import annotations

import pytest

from ops_agent.orchestrator.state import SessionState
from ops_agent.schemas.context import TenantScope
from ops_agent.services.resolver import EntityResolver
from ops_agent.services.safety import SafetyValidator
from ops_agent.services.warehouse import WarehouseRepository
from ops_agent.tools.catalog import build_registry
from ops_agent.tools.registry import ToolContext
from tests.memory_db import MemoryDatabase
from tests.seed import TENANT, USER_DANA, build_seed


@pytest.fixture()
def database():
    return MemoryDatabase(build_seed())


@pytest.fixture()
def repository(database):
    return WarehouseRepository(database)


@pytest.fixture()
def safety(repository):
    return SafetyValidator(repository)


@pytest.fixture()
def registry(repository):
    return build_registry(EntityResolver(repository))


@pytest.fixture()
def scope():
    return TenantScope(tenant_id=TENANT, user_id=USER_DANA, user_display_name="Dana Ortiz")


@pytest.fixture()
def make_context(scope, repository, safety):
    def _make(session: SessionState | None = None) -> ToolContext:
        return ToolContext(scope=scope, session=session or SessionState(), repository=repository, safety=safety)

    return _make


@pytest.fixture()
def call_tool(registry, make_context):
    """Run a tool through the registry the way the orchestrator does."""

    def _call(name, arguments=None, session: SessionState | None = None):
        return registry.execute(name, arguments or {}, make_context(session))

    return _call
