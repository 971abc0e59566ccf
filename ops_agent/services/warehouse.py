from __future__ import annotations

import logging
import uuid
from collections import Counter
from datetime import UTC, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from pymongo import DESCENDING, ReturnDocument

logger = logging.getLogger(__name__)

WORKING_TASK_STATUSES = ("open", "in_progress")
ACTIVE_TASK_STATUSES = ("pending_approval",) + WORKING_TASK_STATUSES
FREEZING_STOCKTAKE_STATUSES = ("draft", "in_progress")
ACTIVE_OUTBOUND_STATUSES = ("pending", "processing")

NO_ID = {"_id": 0}
NEWEST_FIRST = ("created_at", DESCENDING)

Document = Dict[str, Any]


def utcnow() -> datetime:
    return datetime.now(UTC)


def _unique(ids: Iterable[Optional[str]]) -> List[str]:
    return list(dict.fromkeys(value for value in ids if value))


class WarehouseRepository:
    """Tenant-scoped access to the warehouse collections in MongoDB.

    Every query is filtered by ``tenant_id``. Related rows are always fetched
    in one ``$in`` query per collection rather than row by row.
    """

    def __init__(self, database) -> None:
        self._db = database

    # ------------------------------------------------------------ reads

    def search(
        self,
        collection: str,
        tenant_id: str,
        *,
        pattern: Optional[str],
        fields: Sequence[str],
        filters: Optional[Mapping[str, Any]] = None,
        limit: int = 30,
        sort: Optional[Tuple[str, int]] = None,
    ) -> List[Document]:
        query: Document = {"tenant_id": tenant_id, "deleted_at": None}
        for key, value in (filters or {}).items():
            if value is not None:
                query[key] = value
        if pattern:
            query["$or"] = [{field: {"$regex": pattern, "$options": "i"}} for field in fields]
        cursor = self._db[collection].find(query, NO_ID)
        if sort:
            cursor = cursor.sort(sort[0], sort[1])
        return list(cursor.limit(limit))

    def get(self, collection: str, tenant_id: str, entity_id: str) -> Optional[Document]:
        return self._db[collection].find_one({"id": entity_id, "tenant_id": tenant_id}, NO_ID)

    def get_many(self, collection: str, tenant_id: str, ids: Iterable[Optional[str]]) -> List[Document]:
        wanted = _unique(ids)
        if not wanted:
            return []
        return list(self._db[collection].find({"id": {"$in": wanted}, "tenant_id": tenant_id}, NO_ID))

    def rows_by_id(self, collection: str, tenant_id: str, ids: Iterable[Optional[str]]) -> Dict[str, Document]:
        return {row["id"]: row for row in self.get_many(collection, tenant_id, ids)}

    def find(
        self,
        collection: str,
        tenant_id: str,
        filters: Mapping[str, Any],
        *,
        limit: int = 0,
        sort: Optional[Tuple[str, int]] = None,
    ) -> List[Document]:
        query: Document = {"tenant_id": tenant_id, **filters}
        cursor = self._db[collection].find(query, NO_ID)
        if sort:
            cursor = cursor.sort(sort[0], sort[1])
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def count_by(
        self,
        collection: str,
        tenant_id: str,
        field: str,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, int]:
        rows = self.find(collection, tenant_id, {"deleted_at": None, **(filters or {})})
        return dict(Counter(str(row.get(field) or "unknown") for row in rows))

    def open_tasks_for_items(
        self,
        tenant_id: str,
        item_ids: Iterable[str],
        task_type: Optional[str] = None,
    ) -> List[Document]:
        wanted = _unique(item_ids)
        if not wanted:
            return []
        filters: Document = {
            "status": {"$in": list(ACTIVE_TASK_STATUSES)},
            "item_ids": {"$in": wanted},
            "deleted_at": None,
        }
        if task_type:
            filters["task_type"] = task_type
        return self.find("tasks", tenant_id, filters)

    def completed_inspection_item_ids(self, tenant_id: str, item_ids: Iterable[str]) -> Set[str]:
        wanted = _unique(item_ids)
        if not wanted:
            return set()
        rows = self.find(
            "tasks",
            tenant_id,
            {"task_type": "inspection", "status": "completed", "item_ids": {"$in": wanted}, "deleted_at": None},
        )
        return {item_id for row in rows for item_id in row.get("item_ids") or [] if item_id in wanted}

    def stocktake_locks(self, tenant_id: str, item_ids: Iterable[str]) -> Dict[str, str]:
        """Map item id -> number of the draft/in-progress stocktake freezing it."""
        wanted = _unique(item_ids)
        if not wanted:
            return {}
        open_stocktakes = {
            row["id"]: row.get("stocktake_number") or row["id"]
            for row in self.find("stocktakes", tenant_id, {"status": {"$in": list(FREEZING_STOCKTAKE_STATUSES)}})
        }
        if not open_stocktakes:
            return {}
        lines = self.find(
            "stocktake_items",
            tenant_id,
            {"stocktake_id": {"$in": list(open_stocktakes)}, "item_id": {"$in": wanted}},
        )
        locks: Dict[str, str] = {}
        for line in lines:
            locks.setdefault(line["item_id"], open_stocktakes[line["stocktake_id"]])
        return locks

    def active_outbound(self, tenant_id: str, item_ids: Iterable[str]) -> Dict[str, str]:
        """Map item id -> number of a pending/processing outbound shipment holding it."""
        wanted = _unique(item_ids)
        if not wanted:
            return {}
        lines = self.find("shipment_items", tenant_id, {"item_id": {"$in": wanted}})
        shipments = self.rows_by_id("shipments", tenant_id, (line.get("shipment_id") for line in lines))
        holding: Dict[str, str] = {}
        for line in lines:
            shipment = shipments.get(line.get("shipment_id"))
            if not shipment or shipment.get("deleted_at"):
                continue
            if shipment.get("shipment_type") != "outbound":
                continue
            if shipment.get("status") not in ACTIVE_OUTBOUND_STATUSES:
                continue
            holding.setdefault(line["item_id"], shipment.get("shipment_number") or shipment["id"])
        return holding

    def user_names(self, tenant_id: str, user_ids: Iterable[Optional[str]]) -> Dict[str, str]:
        names = {}
        for user in self.get_many("users", tenant_id, user_ids):
            full_name = f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()
            names[user["id"]] = full_name or "Unknown"
        return names

    def unbilled_total(self, tenant_id: str, account_id: str) -> float:
        rows = self.find("billing_events", tenant_id, {"account_id": account_id, "status": "unbilled"})
        return round(sum(float(row.get("amount") or 0) for row in rows), 2)

    # ------------------------------------------------------------ writes

    def next_number(self, tenant_id: str, prefix: str) -> str:
        counter = self._db["counters"].find_one_and_update(
            {"_id": f"{tenant_id}:{prefix}"},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return f"{prefix}-{int(counter['seq']):05d}"

    def insert_task(self, tenant_id: str, payload: Mapping[str, Any]) -> Document:
        document: Document = {
            "id": str(uuid.uuid4()),
            "tenant_id": tenant_id,
            "task_number": self.next_number(tenant_id, "TSK"),
            "created_at": utcnow(),
            "deleted_at": None,
            **payload,
        }
        self._db["tasks"].insert_one(document)
        document.pop("_id", None)
        logger.info(
            "Task created",
            extra={"tenant_id": tenant_id, "task_number": document["task_number"], "task_type": document.get("task_type")},
        )
        return document

    def move_item(
        self,
        tenant_id: str,
        item_id: str,
        *,
        to_location_id: str,
        from_location_id: Optional[str],
        moved_by: str,
        movement_type: str,
        notes: Optional[str] = None,
    ) -> bool:
        now = utcnow()
        result = self._db["items"].update_one(
            {"id": item_id, "tenant_id": tenant_id},
            {"$set": {"location_id": to_location_id, "updated_at": now}},
        )
        if result.matched_count == 0:
            return False
        self._db["item_movements"].insert_one(
            {
                "id": str(uuid.uuid4()),
                "tenant_id": tenant_id,
                "item_id": item_id,
                "from_location_id": from_location_id,
                "to_location_id": to_location_id,
                "movement_type": movement_type,
                "moved_by": moved_by,
                "notes": notes,
                "created_at": now,
            }
        )
        return True

    def add_item_note(self, tenant_id: str, item_id: str, note: str, created_by: str) -> Document:
        document: Document = {
            "id": str(uuid.uuid4()),
            "tenant_id": tenant_id,
            "item_id": item_id,
            "note": note,
            "created_by": created_by,
            "created_at": utcnow(),
        }
        self._db["item_notes"].insert_one(document)
        document.pop("_id", None)
        return document

    def dispose_items(self, tenant_id: str, item_ids: Sequence[str], *, disposed_by: str, reason: Optional[str]) -> int:
        if not item_ids:
            return 0
        result = self._db["items"].update_many(
            {"id": {"$in": list(item_ids)}, "tenant_id": tenant_id},
            {
                "$set": {
                    "status": "disposed",
                    "disposed_at": utcnow(),
                    "disposed_by": disposed_by,
                    "disposal_reason": reason,
                }
            },
        )
        return result.modified_count

    def close_stocktake(self, tenant_id: str, stocktake_id: str, completed_by: str) -> bool:
        result = self._db["stocktakes"].update_one(
            {"id": stocktake_id, "tenant_id": tenant_id},
            {"$set": {"status": "completed", "completed_at": utcnow(), "completed_by": completed_by}},
        )
        return result.matched_count > 0

