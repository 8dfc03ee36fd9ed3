"""
Push notifications for connection and message events.

The core only sees NotificationPort.send(user_id, kind, payload). Delivery
is best-effort: PushNotificationService records every attempt in push_logs
and posts to the configured push gateway when the user has a device token.
Callers must never let a notification failure undo the state change that
triggered it.
"""

from enum import Enum
from typing import Any, Protocol

import httpx

from haroo.config import settings
from haroo.infrastructure.observability.logging import get_logger
from haroo.repositories.base import PushLogRepository, UserRepository

logger = get_logger(__name__)

ANDROID_CHANNEL_ID = "haroo_default"


class TemplateKind(str, Enum):
    MODE_REQUESTED = "MODE_REQUESTED"
    MODE_ACCEPTED = "MODE_ACCEPTED"
    MODE_REJECTED = "MODE_REJECTED"
    MESSAGE_RECEIVED = "MESSAGE_RECEIVED"
    MODE_EXPIRED = "MODE_EXPIRED"
    PENDING_REMINDER = "PENDING_REMINDER"
    PENDING_EXPIRED = "PENDING_EXPIRED"


PUSH_TEMPLATES: dict[TemplateKind, dict[str, str]] = {
    TemplateKind.MODE_REQUESTED: {
        "title": "누군가 마음을 전하고 싶어 해요",
        "body": "허락하면 하루에 한 번 메시지를 받을 수 있어요.",
    },
    TemplateKind.MODE_ACCEPTED: {
        "title": "메시지 수신이 허락되었어요",
        "body": "오늘부터 하루에 한 번 메시지를 보낼 수 있어요.",
    },
    TemplateKind.MODE_REJECTED: {
        "title": "메시지 모드 신청이 거절되었어요",
        "body": "상대의 선택을 존중해 주세요.",
    },
    # No preview of the message content
    TemplateKind.MESSAGE_RECEIVED: {
        "title": "오늘의 메시지가 도착했어요",
        "body": "",
    },
    TemplateKind.MODE_EXPIRED: {
        "title": "메시지 모드가 종료되었어요",
        "body": "필요하다면 다시 신청할 수 있어요.",
    },
    TemplateKind.PENDING_REMINDER: {
        "title": "아직 선택하지 않은 마음이 있어요",
        "body": "하루가 지나면 이 요청은 사라져요",
    },
    TemplateKind.PENDING_EXPIRED: {
        "title": "메시지 모드 신청이 만료되었어요",
        "body": "응답이 없어 자동으로 종료되었습니다.",
    },
}


class NotificationPort(Protocol):
    async def send(
        self, user_id: str, kind: TemplateKind, payload: dict[str, Any] | None = None
    ) -> bool: ...


async def notify_safely(
    notifier: NotificationPort,
    user_id: str,
    kind: TemplateKind,
    payload: dict[str, Any] | None = None,
) -> None:
    """Send through any NotificationPort; failures are logged and never raised."""
    try:
        await notifier.send(user_id, kind, payload)
    except Exception as e:
        logger.error(
            "Notification failed",
            user_id=user_id,
            kind=kind.value,
            error=str(e),
            error_type=type(e).__name__,
        )


class PushNotificationService:
    """
    NotificationPort backed by an HTTP push gateway.

    Args:
        users: Source of device tokens
        push_logs: Attempt log
        gateway_url: Gateway endpoint; None disables transport (attempts are still logged)
        gateway_token: Bearer token for the gateway
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        users: UserRepository,
        push_logs: PushLogRepository,
        gateway_url: str | None = None,
        gateway_token: str | None = None,
        timeout: float = 5.0,
    ):
        self.users = users
        self.push_logs = push_logs
        self.gateway_url = gateway_url
        self.gateway_token = gateway_token
        self.timeout = timeout

    async def send(
        self, user_id: str, kind: TemplateKind, payload: dict[str, Any] | None = None
    ) -> bool:
        template = PUSH_TEMPLATES[kind]
        data = {"type": kind.value}
        data.update({key: str(value) for key, value in (payload or {}).items()})

        user = await self.users.get(user_id)
        token = user.fcm_token if user else None

        delivered = False
        if not token:
            logger.info("No device token for push", user_id=user_id, kind=kind.value)
        elif not self.gateway_url:
            logger.debug("Push gateway not configured", user_id=user_id, kind=kind.value)
        else:
            delivered = await self._post(token, template, data, user_id)

        await self.push_logs.record(user_id, template["title"], template["body"], data, delivered)
        return delivered

    async def _post(
        self, token: str, template: dict[str, str], data: dict[str, str], user_id: str
    ) -> bool:
        body = {
            "token": token,
            "notification": {"title": template["title"], "body": template["body"]},
            "data": data,
            "android": {"priority": "high", "notification": {"channel_id": ANDROID_CHANNEL_ID}},
        }
        headers = {}
        if self.gateway_token:
            headers["Authorization"] = f"Bearer {self.gateway_token}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.gateway_url, json=body, headers=headers)
        except httpx.RequestError as e:
            logger.warning(
                "Push gateway request failed",
                user_id=user_id,
                kind=data["type"],
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if response.status_code >= 400:
            logger.warning(
                "Push gateway rejected notification",
                user_id=user_id,
                kind=data["type"],
                status_code=response.status_code,
            )
            return False

        logger.info("Push sent", user_id=user_id, kind=data["type"])
        return True


def build_push_service(users: UserRepository, push_logs: PushLogRepository) -> PushNotificationService:
    return PushNotificationService(
        users,
        push_logs,
        gateway_url=settings.PUSH_GATEWAY_URL,
        gateway_token=settings.PUSH_GATEWAY_TOKEN,
        timeout=settings.PUSH_TIMEOUT_SECONDS,
    )
