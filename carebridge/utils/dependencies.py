from typing import Optional

from fastapi import Depends
from fastapi.requests import HTTPConnection
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from carebridge.database.connection import mongo_db_dependency
from carebridge.repositories.conversation_repository import ConversationRepository
from carebridge.repositories.device_repository import DeviceRepository
from carebridge.repositories.user_repository import ProfileRepository, UserRepository
from carebridge.schemas.user import Principal
from carebridge.services.chat_service import ChatService
from carebridge.services.identity_service import IdentityService
from carebridge.services.notification_service import NotificationService


bearer = HTTPBearer(auto_error=False)


def get_identity_service(db=Depends(mongo_db_dependency)) -> IdentityService:
    return IdentityService(UserRepository(db), ProfileRepository(db))


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    identity: IdentityService = Depends(get_identity_service),
) -> Principal:
    token = credentials.credentials if credentials else None
    return await identity.authenticate(token)


def get_chat_service(
    conn: HTTPConnection,
    db=Depends(mongo_db_dependency),
    identity: IdentityService = Depends(get_identity_service),
) -> ChatService:
    state = conn.app.state
    profile_repo = ProfileRepository(db)
    notifier = NotificationService(identity, profile_repo, DeviceRepository(db), state.push)
    return ChatService(
        ConversationRepository(db),
        profile_repo,
        identity,
        broadcaster=state.broadcaster,
        locks=state.locks,
        notifier=notifier,
        dispatcher=state.dispatcher,
    )
