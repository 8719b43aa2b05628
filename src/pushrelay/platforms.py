"""Per-platform delivery over the APNs and FCM HTTP APIs.

The publisher credential says *who is sending*; the device token says
*where to deliver*.  They travel separately:

* APNs: device token in the URL path (``POST /3/device/<token>``), JWT in
  the ``authorization`` header.
* FCM: device token in the body (``{"message": {"token": ...}}``), OAuth2
  access token in the ``authorization`` header.

Both senders turn every outcome into a :class:`PushResult`; they do not
raise for network or upstream failures.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

import aiohttp

from pushrelay._constants import APNS_HOST, APNS_SANDBOX_HOST, FCM_SEND_URL, HTTP_TIMEOUT
from pushrelay.registry import Platform
from pushrelay.tokens import Upstream

logger = logging.getLogger(__name__)

InvalidTokenHandler = Callable[[str], Awaitable[object]]

# FCM error statuses meaning the token will never accept deliveries again.
_FCM_INVALID_STATUSES = frozenset({"UNREGISTERED", "NOT_FOUND"})


class DeliveryError(RuntimeError):
    """Raised internally when an upstream rejects one delivery."""


class PushStatus(StrEnum):
    SENT = "sent"
    FAILED = "failed"
    REMOVED = "removed"


@dataclass(frozen=True)
class PushResult:
    platform: Platform
    status: PushStatus
    reason: str | None = None

    def to_dict(self) -> dict[str, str]:
        data = {"platform": str(self.platform), "status": str(self.status)}
        if self.reason is not None:
            data["reason"] = self.reason
        return data


class PlatformSender(Protocol):
    platform: Platform
    upstream: Upstream

    async def send(
        self, credential: str, device_token: str, title: str, body: str
    ) -> PushResult: ...


class ApnsSender:
    """Deliver to iOS devices through APNs.

    A ``410 Gone`` means the token is dead (app removed, token rotated):
    *on_invalid* is awaited with the token so it can be purged everywhere.
    """

    platform = Platform.IOS
    upstream = Upstream.APNS

    def __init__(self, topic: str, *, sandbox: bool, on_invalid: InvalidTokenHandler) -> None:
        self._topic = topic
        self._host = APNS_SANDBOX_HOST if sandbox else APNS_HOST
        self._on_invalid = on_invalid

    def url(self, device_token: str) -> str:
        return f"{self._host}/3/device/{device_token}"

    async def send(self, credential: str, device_token: str, title: str, body: str) -> PushResult:
        headers = {
            "authorization": f"bearer {credential}",
            "apns-topic": self._topic,
            "apns-push-type": "alert",
            "apns-priority": "10",
            "content-type": "application/json",
        }
        payload = {
            "aps": {
                "alert": {"title": title, "body": body},
                "sound": "default",
                "content-available": 1,
            }
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.url(device_token),
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=HTTP_TIMEOUT),
                ) as resp:
                    if resp.status // 100 == 2:
                        return PushResult(self.platform, PushStatus.SENT)
                    err = await _error_body(resp)
                    status = resp.status

            reason = err.get("reason")
            if status == 410:
                await self._on_invalid(device_token)
                return PushResult(self.platform, PushStatus.REMOVED, str(reason or "Unregistered"))
            raise DeliveryError(str(reason) if reason else f"HTTP {status}")
        except (aiohttp.ClientError, TimeoutError, DeliveryError) as e:
            logger.warning("APNs delivery to %s… failed: %s", device_token[:8], e)
            return PushResult(self.platform, PushStatus.FAILED, str(e) or type(e).__name__)


class FcmSender:
    """Deliver to Android devices through FCM HTTP v1.

    An ``UNREGISTERED`` or ``NOT_FOUND`` error status means the token is dead
    and *on_invalid* is awaited with it.
    """

    platform = Platform.ANDROID
    upstream = Upstream.FCM

    def __init__(self, project_id: str, *, on_invalid: InvalidTokenHandler) -> None:
        self._url = FCM_SEND_URL.format(project_id=project_id)
        self._on_invalid = on_invalid

    @property
    def url(self) -> str:
        return self._url

    async def send(self, credential: str, device_token: str, title: str, body: str) -> PushResult:
        headers = {
            "authorization": f"Bearer {credential}",
            "content-type": "application/json",
        }
        message = {
            "message": {
                "token": device_token,
                "notification": {"title": title, "body": body},
                "android": {"priority": "high"},
            }
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self._url,
                    json=message,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=HTTP_TIMEOUT),
                ) as resp:
                    if resp.status // 100 == 2:
                        return PushResult(self.platform, PushStatus.SENT)
                    err = await _error_body(resp)
                    status = resp.status

            error = err.get("error")
            if not isinstance(error, dict):
                error = {}
            error_status = str(error.get("status") or "")
            if error_status in _FCM_INVALID_STATUSES:
                await self._on_invalid(device_token)
                return PushResult(self.platform, PushStatus.REMOVED, error_status)
            message_text = error.get("message")
            raise DeliveryError(str(message_text) if message_text else f"HTTP {status}")
        except (aiohttp.ClientError, TimeoutError, DeliveryError) as e:
            logger.warning("FCM delivery to %s… failed: %s", device_token[:8], e)
            return PushResult(self.platform, PushStatus.FAILED, str(e) or type(e).__name__)


async def _error_body(resp: aiohttp.ClientResponse) -> dict[str, object]:
    """Decode an upstream error body, or ``{}`` if it is not a JSON object."""
    try:
        data = await resp.json(content_type=None)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
