from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

ANONYMOUS_USER_ID = "anonymous"
UNKNOWN_USER_NAME = "Unknown"


class TenantScope(BaseModel):
    model_config = ConfigDict(frozen=True)

    tenant_id: str = Field(..., min_length=1, description="Tenant identifier every query is filtered by")
    user_id: str = Field(default=ANONYMOUS_USER_ID, description="Acting user identifier")
    user_display_name: str = Field(default=UNKNOWN_USER_NAME, description="Acting user's display name")

    @property
    def is_anonymous(self) -> bool:
        return self.user_id == ANONYMOUS_USER_ID


class UIContext(BaseModel):
    """Advisory hints from the caller's screen; never used for authorization."""

    current_route: Optional[str] = Field(
        default=None,
        description="Route the user is currently viewing",
    )
    selected_item_ids: List[str] = Field(default_factory=list)
    selected_shipment_id: Optional[str] = None
