from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant"]


class ChatRequest(BaseModel):
    """Request payload for the chat API."""
    model_config = ConfigDict(populate_by_name=True)

    message: str
    user_id: Optional[str] = Field(default=None, alias="userId")
    attributes: Optional[Dict[str, Any]] = None


class ChatResponse(BaseModel):
    """Response payload returned by the chat API."""
    response: str
    session_id: str


class ClearRequest(BaseModel):
    """Optional body for the clear endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")


class ConversationMessage(BaseModel):
    """One role-tagged turn; list order is chronological order."""
    role: Role
    content: str
    timestamp: float


class SessionSummary(BaseModel):
    """Lightweight session summary for listing."""
    session_id: str
    title: str
    updated_at: float
    message_count: int


class FeedbackRequest(BaseModel):
    """Correction submitted for one assistant reply."""
    model_config = ConfigDict(populate_by_name=True)

    response_id: str = Field(alias="responseId")
    original_response: str = Field(alias="originalResponse")
    corrected_response: str = Field(alias="correctedResponse")
    context: Optional[str] = None
    save_globally: bool = Field(default=False, alias="saveGlobally")


class FeedbackRecord(BaseModel):
    """Stored feedback row; append-only."""
    model_config = ConfigDict(populate_by_name=True)

    id: int
    response_id: str = Field(alias="responseId")
    original_response: str = Field(alias="originalResponse")
    corrected_response: str = Field(alias="correctedResponse")
    context: Optional[str] = None
    save_globally: bool = Field(alias="saveGlobally")
    created_at: datetime = Field(alias="createdAt")
