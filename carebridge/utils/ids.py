from bson import ObjectId

from carebridge.config.settings import Config
from carebridge.services.errors import ChatNotInitialized, ValidationError


def is_placeholder_id(value: str) -> bool:
    return str(value).startswith(Config.PLACEHOLDER_CHAT_PREFIX)


def parse_object_id(value: str, label: str = "ID") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(value):
        raise ValidationError(f"Invalid {label}")
    return ObjectId(value)


def parse_conversation_id(value: str) -> ObjectId:
    # placeholder check runs first so clients can tell "not created yet" from "invalid"
    if value is not None and is_placeholder_id(value):
        raise ChatNotInitialized()
    return parse_object_id(value, "chat ID")
