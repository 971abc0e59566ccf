from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from ops_agent.services.matching import is_canonical_id, prioritize_matches, search_pattern
from ops_agent.services.warehouse import WarehouseRepository

logger = logging.getLogger(__name__)

# argument name -> entity kind
REFERENCE_FIELDS = {
    "item_id": "item",
    "item_ids": "item",
    "shipment_id": "shipment",
    "location_id": "location",
    "to_location_id": "location",
    "stocktake_id": "stocktake",
    "account_id": "account",
}

CODED_ENTITIES = {
    "item": ("items", "item_code"),
    "shipment": ("shipments", "shipment_number"),
    "stocktake": ("stocktakes", "stocktake_number"),
    "task": ("tasks", "task_number"),
}


class EntityResolver:
    """Rewrites human codes in tool arguments into canonical entity ids.

    A value only resolves when the tenant-scoped lookup lands on exactly one
    row; anything else is left for the handler to report as not found.
    """

    def __init__(self, repository: WarehouseRepository) -> None:
        self._repository = repository

    def resolve_arguments(self, tenant_id: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        resolved = dict(arguments)
        for field, kind in REFERENCE_FIELDS.items():
            value = resolved.get(field)
            if isinstance(value, list):
                ids: List[str] = []
                for element in value:
                    match = self.resolve(tenant_id, kind, str(element))
                    if match and match not in ids:
                        ids.append(match)
                if len(ids) != len(value):
                    logger.info(
                        "Dropped unresolved references",
                        extra={"field": field, "requested": len(value), "resolved": len(ids)},
                    )
                resolved[field] = ids
            elif isinstance(value, str) and value.strip():
                resolved[field] = self.resolve(tenant_id, kind, value) or value
        return resolved

    def resolve(self, tenant_id: str, kind: str, value: str) -> Optional[str]:
        value = value.strip()
        if not value:
            return None
        if is_canonical_id(value):
            return value
        if kind == "location":
            return self._resolve_location(tenant_id, value)
        if kind == "account":
            return self._resolve_account(tenant_id, value)
        collection, code_field = CODED_ENTITIES[kind]
        rows = self._repository.search(
            collection,
            tenant_id,
            pattern=search_pattern(value),
            fields=[code_field],
            limit=50,
        )
        return self._single(prioritize_matches(rows, value, code_field), kind, value)

    def _resolve_location(self, tenant_id: str, value: str) -> Optional[str]:
        exact = self._repository.search(
            "locations", tenant_id, pattern=f"^{re.escape(value)}$", fields=["code"], limit=2
        )
        if exact:
            return self._single(exact, "location", value)
        rows = self._repository.search(
            "locations", tenant_id, pattern=re.escape(value), fields=["code", "name"], limit=2
        )
        return self._single(rows, "location", value)

    def _resolve_account(self, tenant_id: str, value: str) -> Optional[str]:
        exact = self._repository.search(
            "accounts", tenant_id, pattern=f"^{re.escape(value)}$", fields=["account_code"], limit=2
        )
        if exact:
            return self._single(exact, "account", value)
        rows = self._repository.search(
            "accounts", tenant_id, pattern=re.escape(value), fields=["account_name"], limit=2
        )
        return self._single(rows, "account", value)

    def _single(self, rows: List[Dict[str, Any]], kind: str, value: str) -> Optional[str]:
        if len(rows) == 1:
            return rows[0]["id"]
        logger.debug("Reference not resolved", extra={"kind": kind, "value": value, "matches": len(rows)})
        return None
