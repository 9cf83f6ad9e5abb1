from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from bson import ObjectId
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field


def to_jsonable(value: Any) -> Any:
    return jsonable_encoder(value, custom_encoder={ObjectId: str})


def _id(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


class SendMessageRequest(BaseModel):

    text: str = ""


class RegisterDeviceRequest(BaseModel):

    platform: Literal["fcm", "webpush"] = "fcm"
    token: str = Field(min_length=1)


class MessageOut(BaseModel):

    id: str
    sender_id: str
    sender_role: Optional[str] = None
    text: str
    read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "MessageOut":
        return cls(
            id=str(doc["_id"]),
            sender_id=str(doc["sender_id"]),
            sender_role=doc.get("sender_role"),
            text=doc["text"],
            read=bool(doc.get("read")),
            read_at=doc.get("read_at"),
            created_at=doc["created_at"],
        )


class ConversationOut(BaseModel):
    """A conversation with its full embedded history."""

    id: str
    homeless_id: str
    organization_id: Optional[str] = None
    merchant_id: Optional[str] = None
    type: Literal["organization", "merchant"]
    messages: List[MessageOut] = Field(default_factory=list)
    last_message: Optional[str] = None
    unread_count_organization: int = 0
    unread_count_merchant: int = 0
    unread_count_homeless: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ConversationOut":
        messages = sorted(doc.get("messages") or [], key=lambda m: m["created_at"])
        return cls(
            id=str(doc["_id"]),
            homeless_id=str(doc["homeless_id"]),
            organization_id=_id(doc.get("organization_id")),
            merchant_id=_id(doc.get("merchant_id")),
            type="organization" if doc.get("organization_id") else "merchant",
            messages=[MessageOut.from_document(m) for m in messages],
            last_message=_id(doc.get("last_message")),
            unread_count_organization=doc.get("unread_count_organization", 0),
            unread_count_merchant=doc.get("unread_count_merchant", 0),
            unread_count_homeless=doc.get("unread_count_homeless", 0),
            created_at=doc.get("created_at"),
            updated_at=doc.get("updated_at"),
        )


class ConversationSummary(BaseModel):
    """One row of the conversation list, with the counterpart(s) summarised."""

    id: str
    type: Literal["organization", "merchant"]
    organization: Optional[Dict[str, Any]] = None
    merchant: Optional[Dict[str, Any]] = None
    homeless: Optional[Dict[str, Any]] = None
    last_message: Optional[MessageOut] = None
    unread_count: int = 0
    updated_at: Optional[datetime] = None


class ReadReceipt(BaseModel):

    conversation_id: str
    reader_id: str
    reader_role: str
    read_at: datetime
    marked: int = 0
    unread_count_organization: int = 0
    unread_count_merchant: int = 0
    unread_count_homeless: int = 0


class WsInbound(BaseModel):
    """Client -> server frame."""

    type: Literal["join_chat", "leave_chat", "typing_start", "typing_stop", "mark_read", "ping"]
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def conversation_id(self) -> Optional[str]:
        value = self.data.get("conversation_id")
        return str(value) if value else None


class WsOutbound(BaseModel):
    """Server -> client frame."""

    type: str  # connected | joined_chat | left_chat | new_message | typing | messages_read | error | pong
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def build(cls, type: str, data: Any) -> "WsOutbound":
        return cls(type=type, data=to_jsonable(data))
