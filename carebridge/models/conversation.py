from datetime import datetime
from typing import List, Optional, TypedDict

from bson import ObjectId

from carebridge.models.message import MessageDocument


class ConversationDocument(TypedDict, total=False):
    _id: ObjectId
    homeless_id: ObjectId
    # exactly one of organization_id / merchant_id is set
    organization_id: Optional[ObjectId]
    merchant_id: Optional[ObjectId]
    messages: List[MessageDocument]
    last_message: Optional[ObjectId]
    unread_count_organization: int
    unread_count_merchant: int
    unread_count_homeless: int
    is_deleted: bool
    deleted_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
