"""Fan-out of one notification to every device of a tenant."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from pushrelay.platforms import PlatformSender, PushResult, PushStatus
from pushrelay.registry import DeviceRecord, DeviceRegistry, Platform
from pushrelay.tokens import CredentialError, TokenManager

logger = logging.getLogger(__name__)


class Dispatcher:
    """Send a notification to all devices registered under a tenant.

    Example::

        dispatcher = Dispatcher(registry, tokens, {
            Platform.IOS: ApnsSender(bundle_id, sandbox=False, on_invalid=registry.remove_everywhere),
            Platform.ANDROID: FcmSender(project_id, on_invalid=registry.remove_everywhere),
        })
        results = await dispatcher.dispatch(tenant_id, "Build finished", "All green")
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        tokens: TokenManager,
        senders: Mapping[Platform, PlatformSender],
    ) -> None:
        self._registry = registry
        self._tokens = tokens
        self._senders = dict(senders)

    async def dispatch(self, tenant_id: str, title: str, body: str) -> list[PushResult]:
        """Deliver to every device concurrently and return one result per device.

        Results follow the registry's device order.  Failures stay local to
        their device, or to their platform when its credential cannot be
        obtained; nothing here raises for an upstream problem.
        """
        devices = await self._registry.list(tenant_id)
        if not devices:
            return []

        platforms = list(dict.fromkeys(d.platform for d in devices))
        acquired = await asyncio.gather(*(self._credential_for(p) for p in platforms))
        credentials = dict(zip(platforms, acquired, strict=True))

        return list(
            await asyncio.gather(
                *(self._send_one(d, credentials[d.platform], title, body) for d in devices)
            )
        )

    async def _credential_for(self, platform: Platform) -> str | CredentialError:
        sender = self._senders.get(platform)
        if sender is None:
            return CredentialError(f"No sender configured for platform {platform}.")
        try:
            return await self._tokens.get_credential(sender.upstream)
        except CredentialError as e:
            logger.error("Cannot obtain %s publisher credential: %s", sender.upstream, e)
            return e

    async def _send_one(
        self,
        device: DeviceRecord,
        credential: str | CredentialError,
        title: str,
        body: str,
    ) -> PushResult:
        if isinstance(credential, CredentialError):
            return PushResult(device.platform, PushStatus.FAILED, str(credential))
        sender = self._senders[device.platform]
        try:
            return await sender.send(credential, device.device_token, title, body)
        except Exception as e:
            logger.exception(
                "Unexpected error sending to %s device %s…", device.platform, device.device_token[:8]
            )
            return PushResult(device.platform, PushStatus.FAILED, str(e) or type(e).__name__)
