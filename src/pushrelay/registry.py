"""Per-tenant device registry.

Each tenant (relay token) owns one store entry ``devices:<tenant_id>`` holding
``{"devices": [...]}``.  Entries are read-modify-written without locking, so
two concurrent writes to the same tenant may lose one of them.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from pushrelay._constants import DEVICE_KEY_PREFIX
from pushrelay.store import KeyValueStore

logger = logging.getLogger(__name__)


class Platform(StrEnum):
    IOS = "ios"
    ANDROID = "android"


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with milliseconds and a ``Z`` suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class DeviceRecord:
    """One registered app installation."""

    platform: Platform
    device_token: str
    bundle_id: str | None = None
    registered_at: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "platform": str(self.platform),
            "device_token": self.device_token,
        }
        if self.bundle_id is not None:
            data["bundle_id"] = self.bundle_id
        data["registered_at"] = self.registered_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> DeviceRecord:
        bundle_id = data.get("bundle_id")
        return cls(
            platform=Platform(str(data["platform"])),
            device_token=str(data["device_token"]),
            bundle_id=str(bundle_id) if bundle_id is not None else None,
            registered_at=str(data.get("registered_at", "")),
        )


class DeviceRegistry:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def list(self, tenant_id: str) -> list[DeviceRecord]:
        """Devices registered under *tenant_id*; empty if there is no entry."""
        raw = await self._store.get(_key(tenant_id))
        if raw is None:
            return []
        devices = json.loads(raw).get("devices") or []
        return [DeviceRecord.from_dict(d) for d in devices]

    async def add(self, tenant_id: str, record: DeviceRecord) -> None:
        """Register *record*, replacing any entry with the same device token."""
        devices = await self.list(tenant_id)
        for i, existing in enumerate(devices):
            if existing.device_token == record.device_token:
                devices[i] = record
                break
        else:
            devices.append(record)
        await self._save(tenant_id, devices)
        logger.info(
            "Registered %s device %s… (%d on tenant)",
            record.platform,
            record.device_token[:8],
            len(devices),
        )

    async def remove(self, tenant_id: str, device_token: str) -> bool:
        """Remove *device_token* from the tenant.  Returns whether it was present.

        The tenant's entry is deleted outright when its last device goes, so
        an empty tenant and an unknown tenant look the same.
        """
        devices = await self.list(tenant_id)
        remaining = [d for d in devices if d.device_token != device_token]
        if len(remaining) == len(devices):
            return False
        if remaining:
            await self._save(tenant_id, remaining)
        else:
            await self._store.delete(_key(tenant_id))
        return True

    async def remove_everywhere(self, device_token: str) -> int:
        """Remove *device_token* from every tenant that has it.

        Follows the store's continuation cursors until the listing is
        exhausted.  Best effort: a registration racing the scan can survive
        it.  Returns the number of tenants the token was removed from.
        """
        removed = 0
        cursor: str | None = None
        while True:
            page = await self._store.list_keys(DEVICE_KEY_PREFIX, cursor)
            for key in page.keys:
                if await self.remove(key[len(DEVICE_KEY_PREFIX) :], device_token):
                    removed += 1
            cursor = page.cursor
            if cursor is None:
                break
        logger.info("Purged device %s… from %d tenant(s)", device_token[:8], removed)
        return removed

    async def _save(self, tenant_id: str, devices: list[DeviceRecord]) -> None:
        payload = {"devices": [d.to_dict() for d in devices]}
        await self._store.put(_key(tenant_id), json.dumps(payload, separators=(",", ":")))


def _key(tenant_id: str) -> str:
    return f"{DEVICE_KEY_PREFIX}{tenant_id}"
