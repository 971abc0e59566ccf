from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from ops_agent.adapters.mongo_client import MongoClientFactory
from ops_agent.adapters.reasoning_client import ReasoningClient
from ops_agent.app.config import Settings, get_settings
from ops_agent.orchestrator.graph import AgentOrchestrator
from ops_agent.services.identity import IdentityResolver
from ops_agent.services.resolver import EntityResolver
from ops_agent.services.safety import SafetyValidator
from ops_agent.services.sessions import SessionStore
from ops_agent.services.warehouse import WarehouseRepository
from ops_agent.tools.catalog import build_registry
from ops_agent.tools.registry import ToolRegistry


@lru_cache(maxsize=1)
def get_mongo_factory() -> MongoClientFactory:
    settings = get_settings()
    return MongoClientFactory(settings.mongo_uri, settings.mongo_database)


@lru_cache(maxsize=1)
def get_reasoning_client() -> ReasoningClient:
    settings = get_settings()
    return ReasoningClient(
        base_url=settings.reasoning_api_url,
        api_key=settings.reasoning_api_key,
        model=settings.reasoning_model,
        timeout=settings.reasoning_timeout_seconds,
    )


def get_database(mongo_factory: MongoClientFactory = Depends(get_mongo_factory)):
    return mongo_factory.get_database()


def get_repository(database=Depends(get_database)) -> WarehouseRepository:
    return WarehouseRepository(database)


def get_session_store(
    settings: Settings = Depends(get_settings),
    database=Depends(get_database),
) -> SessionStore:
    return SessionStore(
        collection=database[settings.sessions_collection],
        ttl=timedelta(minutes=settings.session_ttl_minutes),
    )


def get_identity_resolver(database=Depends(get_database)) -> IdentityResolver:
    return IdentityResolver(tokens_collection=database["access_tokens"], users_collection=database["users"])


def get_authorization(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    return authorization


def get_tool_registry(repository: WarehouseRepository = Depends(get_repository)) -> ToolRegistry:
    return build_registry(EntityResolver(repository))


def get_orchestrator(
    settings: Settings = Depends(get_settings),
    engine: ReasoningClient = Depends(get_reasoning_client),
    repository: WarehouseRepository = Depends(get_repository),
    registry: ToolRegistry = Depends(get_tool_registry),
    session_store: SessionStore = Depends(get_session_store),
) -> AgentOrchestrator:
    return AgentOrchestrator(
        engine=engine,
        registry=registry,
        repository=repository,
        safety=SafetyValidator(repository),
        session_store=session_store,
        max_rounds=settings.max_tool_rounds,
        history_window=settings.history_window,
    )
