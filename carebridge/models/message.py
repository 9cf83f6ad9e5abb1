from datetime import datetime
from typing import Optional, TypedDict

from bson import ObjectId


class MessageDocument(TypedDict, total=False):
    _id: ObjectId
    sender_id: str
    sender_role: str
    text: str
    # read state, flipped only by mark-as-read
    read: bool
    read_at: Optional[datetime]
    created_at: datetime
