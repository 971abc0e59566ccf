from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

from ops_agent.services.warehouse import WarehouseRepository

RESOLVED_VARIANCE_STATUSES = ("resolved", "verified")
UNDISPOSABLE_STATUSES = ("allocated", "released")


@dataclass
class ClosureCheck:
    stocktake: Mapping[str, Any]
    total_lines: int
    unresolved: List[Mapping[str, Any]] = field(default_factory=list)

    @property
    def can_close(self) -> bool:
        return not self.unresolved

    @property
    def message(self) -> str:
        if self.can_close:
            return "Stocktake ready to close. Confirm?"
        return f"Cannot close: {len(self.unresolved)} variance(s) need resolution"


def variance_settled(line: Mapping[str, Any]) -> bool:
    if line.get("expected_quantity") == line.get("actual_quantity"):
        return True
    if line.get("variance_resolved"):
        return True
    return line.get("variance_status") in RESOLVED_VARIANCE_STATUSES


class SafetyValidator:
    """Business rules shared by every mutating tool."""

    def __init__(self, repository: WarehouseRepository) -> None:
        self._repository = repository

    def move_blockers(self, tenant_id: str, items: Sequence[Mapping[str, Any]]) -> Dict[str, str]:
        """Hard blockers keyed by item id; items absent from the result may move."""
        locks = self._repository.stocktake_locks(tenant_id, [item["id"] for item in items])
        blockers: Dict[str, str] = {}
        for item in items:
            if item["id"] in locks:
                blockers[item["id"]] = f"Item frozen by stocktake {locks[item['id']]}"
            elif item.get("status") == "allocated":
                blockers[item["id"]] = (
                    "Item is allocated for outbound release. Cannot move until released or deallocated."
                )
        return blockers

    def task_warnings(self, tenant_id: str, task_type: str, item_ids: Sequence[str]) -> Dict[str, List[str]]:
        """Soft warnings keyed by item id for creating ``task_type`` tasks."""
        warnings: Dict[str, List[str]] = {}
        if task_type == "repair":
            inspected = self._repository.completed_inspection_item_ids(tenant_id, item_ids)
            for item_id in item_ids:
                if item_id not in inspected:
                    warnings.setdefault(item_id, []).append(
                        "No completed inspection found for this item. Repair tasks should follow "
                        "inspection completion. Create inspection first?"
                    )
        if task_type in ("repair", "assembly"):
            outbound = self._repository.active_outbound(tenant_id, item_ids)
            for item_id, shipment_number in outbound.items():
                warnings.setdefault(item_id, []).append(
                    f"Item is in active outbound ({shipment_number}). Creating {task_type} task will block release."
                )
        return warnings

    def disposal_blockers(self, items: Sequence[Mapping[str, Any]]) -> Dict[str, str]:
        blockers: Dict[str, str] = {}
        for item in items:
            status = item.get("status")
            if status in UNDISPOSABLE_STATUSES:
                blockers[item["id"]] = f"Item is {status}; allocated or released items cannot be disposed"
            elif status == "disposed":
                blockers[item["id"]] = "Item is already disposed"
        return blockers

    def stocktake_closure(self, tenant_id: str, stocktake: Mapping[str, Any]) -> ClosureCheck:
        lines = self._repository.find("stocktake_items", tenant_id, {"stocktake_id": stocktake["id"]})
        return ClosureCheck(
            stocktake=stocktake,
            total_lines=len(lines),
            unresolved=[line for line in lines if not variance_settled(line)],
        )
