"""Push notification relay for APNs and FCM that keeps publisher credentials server-side."""

from pushrelay.config import Settings
from pushrelay.dispatcher import Dispatcher
from pushrelay.platforms import ApnsSender, FcmSender, PushResult, PushStatus
from pushrelay.refresher import BackgroundRefresher, IntervalScheduler
from pushrelay.registry import DeviceRecord, DeviceRegistry, Platform
from pushrelay.relay import Relay
from pushrelay.store import JsonFileStore, KeyPage, KeyValueStore, MemoryStore, StoreError
from pushrelay.tokens import CredentialError, TokenManager, Upstream

__all__ = [
    "ApnsSender",
    "BackgroundRefresher",
    "CredentialError",
    "DeviceRecord",
    "DeviceRegistry",
    "Dispatcher",
    "FcmSender",
    "IntervalScheduler",
    "JsonFileStore",
    "KeyPage",
    "KeyValueStore",
    "MemoryStore",
    "Platform",
    "PushResult",
    "PushStatus",
    "Relay",
    "Settings",
    "StoreError",
    "TokenManager",
    "Upstream",
]
