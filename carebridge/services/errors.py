"""Error taxonomy shared by the REST routes and the websocket channel."""


class ChatError(Exception):

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    status_code = 400
    code = "VALIDATION_ERROR"


class ChatNotInitialized(ChatError):
    """A client-side placeholder id was used before the conversation exists."""

    status_code = 400
    code = "CHAT_NOT_CREATED"

    def __init__(self, message: str = "Chat not initialized. Please ensure the chat is created before sending messages.") -> None:
        super().__init__(message)


class NotFound(ChatError):
    status_code = 404
    code = "NOT_FOUND"


class AccessDenied(ChatError):
    status_code = 403
    code = "ACCESS_DENIED"

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class AuthenticationError(ChatError):
    status_code = 401
    code = "UNAUTHORIZED"


class Conflict(ChatError):
    status_code = 409
    code = "CONFLICT"
