from __future__ import annotations

from ops_agent.services.resolver import EntityResolver
from ops_agent.tools import analytics, details, disambiguation, disposal, movements, search, stocktakes, tasks
from ops_agent.tools.registry import ToolRegistry

TOOL_MODULES = (search, details, analytics, tasks, movements, disposal, stocktakes, disambiguation)


def all_tools():
    return [spec for module in TOOL_MODULES for spec in module.TOOLS]


def build_registry(resolver: EntityResolver) -> ToolRegistry:
    return ToolRegistry(all_tools(), resolver)
