from fastapi import APIRouter, Depends, status

from carebridge.schemas.chat import ConversationOut, MessageOut, SendMessageRequest
from carebridge.schemas.user import Principal
from carebridge.services.chat_service import ChatService
from carebridge.utils.dependencies import get_chat_service, get_current_user


router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


@router.get("")
async def list_conversations(current_user: Principal = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    items = await service.list_conversations(current_user)
    return {"success": True, "data": [it.model_dump(mode="json") for it in items], "message": "Chats retrieved successfully"}


@router.get("/{conversation_id}/messages")
async def list_messages(conversation_id: str, current_user: Principal = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    messages = await service.get_messages(current_user, conversation_id)
    return {
        "success": True,
        "data": [MessageOut.from_document(m).model_dump(mode="json") for m in messages],
        "message": "Messages retrieved successfully",
    }


@router.get("/merchant/{merchant_id}/{homeless_id}")
async def get_or_create_merchant_chat(merchant_id: str, homeless_id: str, current_user: Principal = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    conversation = await service.get_or_create(current_user, merchant_id, homeless_id, explicit_kind="merchant")
    return {"success": True, "data": ConversationOut.from_document(conversation).model_dump(mode="json"), "message": "Chat retrieved successfully"}


@router.get("/{counterparty_id}/{homeless_id}")
async def get_or_create_chat(counterparty_id: str, homeless_id: str, current_user: Principal = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    # counterparty_id may be an organization or a merchant profile id
    conversation = await service.get_or_create(current_user, counterparty_id, homeless_id)
    return {"success": True, "data": ConversationOut.from_document(conversation).model_dump(mode="json"), "message": "Chat retrieved successfully"}


@router.post("/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(conversation_id: str, body: SendMessageRequest, current_user: Principal = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    message = await service.send_message(current_user, conversation_id, body.text)
    data = MessageOut.from_document(message).model_dump(mode="json")
    data["conversation_id"] = conversation_id
    return {"success": True, "data": data, "message": "Message sent successfully"}


@router.put("/{conversation_id}/read")
async def mark_read(conversation_id: str, current_user: Principal = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    receipt = await service.mark_as_read(current_user, conversation_id)
    return {"success": True, "data": receipt.model_dump(mode="json"), "message": "Messages marked as read"}
