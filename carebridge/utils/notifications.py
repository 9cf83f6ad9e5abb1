import asyncio
import logging
from typing import Dict

from pyfcm import FCMNotification


logger = logging.getLogger(__name__)


class NoopPush:

    enabled = False

    async def send(self, token: str, title: str, body: str, data: Dict[str, str] | None = None) -> None:
        return


class FcmPush:
    """Firebase Cloud Messaging (HTTP v1) through pyfcm."""

    def __init__(self, service_account_file: str, project_id: str) -> None:
        self._client = FCMNotification(service_account_file=service_account_file, project_id=project_id)
        self.enabled = True

    async def send(self, token: str, title: str, body: str, data: Dict[str, str] | None = None) -> None:
        # pyfcm is blocking; keep it off the event loop
        await asyncio.to_thread(
            self._client.notify,
            fcm_token=token,
            notification_title=title,
            notification_body=body,
            data_payload=data or {},
        )


def create_push(service_account_file: str | None, project_id: str | None):
    if not service_account_file or not project_id:
        logger.info("FCM credentials not configured, push notifications disabled")
        return NoopPush()
    return FcmPush(service_account_file, project_id)
