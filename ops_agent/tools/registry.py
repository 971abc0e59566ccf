from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type

from pydantic import ValidationError

from ops_agent.orchestrator.state import PendingDraft, SessionDelta, SessionState
from ops_agent.schemas.context import TenantScope
from ops_agent.schemas.tools import ToolArgs
from ops_agent.services.resolver import EntityResolver
from ops_agent.services.safety import SafetyValidator
from ops_agent.services.warehouse import WarehouseRepository

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    scope: TenantScope
    session: SessionState
    repository: WarehouseRepository
    safety: SafetyValidator

    @property
    def tenant_id(self) -> str:
        return self.scope.tenant_id


@dataclass
class ToolOutcome:
    result: Dict[str, Any]
    session_delta: Optional[SessionDelta] = None

    @property
    def ok(self) -> bool:
        if "ok" in self.result:
            return bool(self.result["ok"])
        return "error" not in self.result


Handler = Callable[[Any, ToolContext], ToolOutcome]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: Dict[str, Any]
    args_model: Type[ToolArgs]
    handler: Handler
    # Execute side of a preview/confirm pair; the draft is dropped if it fails midway.
    executes_draft: bool = False

    def schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def fail(error: str, **fields: Any) -> ToolOutcome:
    return ToolOutcome({"ok": False, "error": error, **fields})


def entity_ref(code: Optional[str], entity_id: str) -> str:
    """Textual reference the UI turns into a link: ``CODE [id]``."""
    return f"{code or 'Unknown'} [{entity_id}]"


def confirmed_draft(
    context: ToolContext, draft_type: str, confirmed: bool, preview_tool: str
) -> Tuple[Optional[PendingDraft], Optional[ToolOutcome]]:
    """Return the live draft of ``draft_type`` once the user has confirmed it.

    Without a matching draft, or without confirmation, the second element is the
    error result to hand back and the draft stays untouched.
    """
    draft = context.session.pending_draft
    if draft is None or draft.type != draft_type:
        return None, fail(f"Nothing to execute. Run {preview_tool} first and show the user the preview.")
    if not confirmed:
        return None, ToolOutcome(
            {
                "ok": False,
                "error": "Confirmation required before executing",
                "requires_confirmation": True,
                "summary": draft.summary,
            }
        )
    return draft, None


class ToolRegistry:
    """Closed set of tools the reasoning engine may call.

    ``execute`` never raises: unknown tools, malformed arguments and handler
    failures all come back as ``{"ok": false, "error": ...}`` results.
    """

    def __init__(self, specs: Iterable[ToolSpec], resolver: EntityResolver) -> None:
        self._specs: Dict[str, ToolSpec] = {}
        for spec in specs:
            if spec.name in self._specs:
                raise ValueError(f"Duplicate tool name: {spec.name}")
            self._specs[spec.name] = spec
        self._resolver = resolver

    @property
    def names(self) -> List[str]:
        return list(self._specs)

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._specs.get(name)

    def schemas(self) -> List[Dict[str, Any]]:
        return [spec.schema() for spec in self._specs.values()]

    def execute(self, name: str, raw_arguments: Any, context: ToolContext) -> ToolOutcome:
        spec = self._specs.get(name)
        if spec is None:
            logger.warning("Unknown tool requested", extra={"tool": name})
            return fail(f"Unknown tool: {name}")

        arguments = self._parse_arguments(raw_arguments)
        if arguments is None:
            return fail(f"Invalid arguments for {name}: expected a JSON object")

        logger.info("Executing tool", extra={"tool": name, "tenant_id": context.tenant_id})
        try:
            arguments = self._resolver.resolve_arguments(context.tenant_id, arguments)
            try:
                parsed = spec.args_model.model_validate(arguments)
            except ValidationError as exc:
                problems = [
                    f"{'.'.join(str(part) for part in error['loc']) or 'arguments'}: {error['msg']}"
                    for error in exc.errors()
                ]
                return fail(f"Invalid arguments for {name}", details=problems)
            return spec.handler(parsed, context)
        except Exception:
            logger.exception("Tool execution failed", extra={"tool": name, "tenant_id": context.tenant_id})
            if spec.executes_draft and context.session.pending_draft is not None:
                return ToolOutcome(
                    fail(
                        f"{name} failed partway. Some changes may already be saved; "
                        "check the records before previewing again."
                    ).result,
                    {"pending_draft": None},
                )
            return fail(f"{name} failed unexpectedly. Try again or rephrase the request.")

    @staticmethod
    def _parse_arguments(raw_arguments: Any) -> Optional[Dict[str, Any]]:
        if raw_arguments is None or raw_arguments == "":
            return {}
        if isinstance(raw_arguments, dict):
            return dict(raw_arguments)
        try:
            parsed = json.loads(raw_arguments)
        except (TypeError, ValueError):
            logger.warning("Tool arguments were not valid JSON")
            return None
        return parsed if isinstance(parsed, dict) else None
