from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

TaskType = Literal["inspection", "assembly", "repair", "repair_quote"]
BulkTaskType = Literal["inspection", "assembly", "repair"]
Priority = Literal["low", "medium", "high", "urgent"]


class ToolArgs(BaseModel):
    """Base for every tool argument object; unknown keys from the model are dropped."""

    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------- search


class SearchItemsArgs(ToolArgs):
    query: str = Field(..., min_length=1)
    status: Optional[str] = None
    account_id: Optional[str] = None
    location_id: Optional[str] = None


class SearchShipmentsArgs(ToolArgs):
    query: str = Field(..., min_length=1)
    status: Optional[str] = None
    shipment_type: Optional[Literal["inbound", "outbound"]] = None


class SearchTasksArgs(ToolArgs):
    query: str = Field(..., min_length=1)
    task_type: Optional[str] = None
    status: Optional[str] = None


class SearchLocationsArgs(ToolArgs):
    query: str = Field(..., min_length=1)
    warehouse_id: Optional[str] = None


class SearchStocktakesArgs(ToolArgs):
    query: Optional[str] = None
    status: Optional[str] = None


class SearchAccountsArgs(ToolArgs):
    query: str = Field(..., min_length=1)


class SearchClaimsArgs(ToolArgs):
    query: str = Field(..., min_length=1)
    status: Optional[str] = None


class LookupReferenceArgs(ToolArgs):
    query: str = Field(..., min_length=1)


# ---------------------------------------------------------------- details


class ItemRefArgs(ToolArgs):
    item_id: str = Field(..., min_length=1)


class MovementHistoryArgs(ItemRefArgs):
    limit: int = Field(default=20, ge=1, le=100)


class ShipmentRefArgs(ToolArgs):
    shipment_id: str = Field(..., min_length=1)


class AccountRefArgs(ToolArgs):
    account_id: str = Field(..., min_length=1)


class WarehouseSnapshotArgs(ToolArgs):
    warehouse_id: Optional[str] = None


class RecentActivityArgs(ToolArgs):
    hours: int = Field(default=24, ge=1, le=24 * 14)
    limit: int = Field(default=20, ge=1, le=100)


# ---------------------------------------------------------------- tasks


class CreateTaskSingleArgs(ToolArgs):
    task_type: TaskType
    item_id: str = Field(..., min_length=1)
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Priority = "medium"
    assignee_id: Optional[str] = None
    acknowledge_warnings: bool = False


class BulkTasksPreviewArgs(ToolArgs):
    task_type: BulkTaskType
    item_ids: List[str] = Field(default_factory=list)
    shipment_id: Optional[str] = None
    priority: Priority = "medium"
    assignee_id: Optional[str] = None
    grouped: bool = False


class ConfirmArgs(ToolArgs):
    confirmed: bool = False


# ---------------------------------------------------------------- movements


class MoveItemArgs(ToolArgs):
    item_id: str = Field(..., min_length=1)
    to_location_id: str = Field(..., min_length=1)
    notes: Optional[str] = None


class MoveItemsPreviewArgs(ToolArgs):
    item_ids: List[str] = Field(default_factory=list)
    to_location_id: str = Field(..., min_length=1)


class MoveItemsExecuteArgs(ConfirmArgs):
    notes: Optional[str] = None


class AddItemNoteArgs(ToolArgs):
    item_id: str = Field(..., min_length=1)
    note: str = Field(..., min_length=1)


# ---------------------------------------------------------------- disposal


class DisposalDraftArgs(ToolArgs):
    item_ids: List[str] = Field(default_factory=list)
    reason: Optional[str] = None


# ---------------------------------------------------------------- stocktakes


class StocktakeRefArgs(ToolArgs):
    stocktake_id: str = Field(..., min_length=1)


class CloseStocktakeArgs(StocktakeRefArgs):
    confirmed: bool = False


# ---------------------------------------------------------------- utility


class ResolveDisambiguationArgs(ToolArgs):
    selections: List[int] = Field(default_factory=list)
    select_all: bool = False
    entity_type: Optional[str] = None
