from fastapi import APIRouter, Depends

from carebridge.database.connection import mongo_db_dependency
from carebridge.repositories.device_repository import DeviceRepository
from carebridge.schemas.chat import RegisterDeviceRequest
from carebridge.schemas.user import Principal
from carebridge.services.errors import NotFound
from carebridge.utils.dependencies import get_current_user


router = APIRouter(prefix="/api/v1/devices", tags=["push"])


@router.post("/register")
async def register_device(payload: RegisterDeviceRequest, current_user: Principal = Depends(get_current_user), db=Depends(mongo_db_dependency)):
    repo = DeviceRepository(db)
    doc = await repo.register(current_user.id, payload.platform, payload.token)
    return {"success": True, "data": {"platform": doc["platform"], "token": doc["token"]}}


@router.delete("/{token}")
async def unregister_device(token: str, current_user: Principal = Depends(get_current_user), db=Depends(mongo_db_dependency)):
    repo = DeviceRepository(db)
    if not await repo.unregister(current_user.id, token):
        raise NotFound("Device not registered")
    return {"success": True, "message": "Device unregistered"}
