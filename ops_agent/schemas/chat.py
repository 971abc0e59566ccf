from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, Field

from ops_agent.schemas.context import UIContext


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"] = Field(..., description="Message role such as user or assistant")
    content: str = Field(..., description="Plain text content")


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1)
    ui_context: UIContext = Field(default_factory=UIContext)
    conversation_history: List[ChatMessage] = Field(default_factory=list)
    stream: bool = True


class ToolCallSummary(BaseModel):
    name: str
    ok: bool


class ChatResponse(BaseModel):
    reply: str
    rounds: int
    tool_calls: List[ToolCallSummary] = Field(default_factory=list)
