import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PayloadError

from carebridge.schemas.chat import WsInbound
from carebridge.services.chat_service import ChatService
from carebridge.services.errors import AuthenticationError, ChatError, ValidationError
from carebridge.services.identity_service import IdentityService
from carebridge.utils.dependencies import get_chat_service, get_identity_service
from carebridge.utils.ids import parse_conversation_id
from carebridge.utils.websocket_manager import Connection, ConnectionManager, conversation_channel


logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _handshake_token(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    service: ChatService = Depends(get_chat_service),
    identity: IdentityService = Depends(get_identity_service),
):
    try:
        principal = await identity.authenticate(_handshake_token(websocket))
    except AuthenticationError as exc:
        logger.info("Refusing websocket connection: %s", exc.message)
        await websocket.close(code=4401)
        return

    manager: ConnectionManager = websocket.app.state.connections
    connection = Connection(websocket, principal)
    await manager.connect(connection)
    logger.info("User connected: %s (%s), connection %s", principal.id, principal.role, connection.id)
    await connection.send("connected", {"user_id": principal.id, "role": principal.role, "connection_id": connection.id})

    try:
        while True:
            raw = await websocket.receive_text()
            await handle_frame(connection, raw, service, manager)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(connection)
        logger.info("User disconnected: %s, connection %s", principal.id, connection.id)


async def handle_frame(connection: Connection, raw: str, service: ChatService, manager: ConnectionManager) -> None:
    try:
        frame = WsInbound.model_validate_json(raw)
    except PayloadError:
        await connection.send("error", {"message": "Invalid message payload", "code": ValidationError.code})
        return

    if frame.type == "ping":
        await connection.send("pong", {})
        return

    conversation_id = frame.conversation_id
    if not conversation_id:
        await connection.send("error", {"message": "Chat ID required", "code": ValidationError.code})
        return

    principal = connection.principal
    try:
        if frame.type == "join_chat":
            conversation = await service.authorize(principal, conversation_id)
            manager.join(connection, conversation_channel(str(conversation["_id"])))
            logger.info("User %s (%s) joined chat %s", principal.id, principal.role, conversation_id)
            await connection.send("joined_chat", {"conversation_id": conversation_id})
        elif frame.type == "leave_chat":
            manager.leave(connection, conversation_channel(str(parse_conversation_id(conversation_id))))
            await connection.send("left_chat", {"conversation_id": conversation_id})
        elif frame.type in ("typing_start", "typing_stop"):
            await service.emit_typing(principal, conversation_id, frame.type == "typing_start", exclude=connection.id)
        elif frame.type == "mark_read":
            await service.mark_as_read(principal, conversation_id)
    except ChatError as exc:
        if frame.type == "join_chat":
            logger.info("User %s denied joining chat %s: %s", principal.id, conversation_id, exc.message)
        await connection.send("error", {"message": exc.message, "code": exc.code, "conversation_id": conversation_id})
    except Exception:
        logger.exception("Error handling %s from user %s", frame.type, principal.id)
        await connection.send("error", {"message": "Internal server error", "code": ChatError.code, "conversation_id": conversation_id})
