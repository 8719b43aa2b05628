"""Assemble the relay components from :class:`~pushrelay.config.Settings`."""

from __future__ import annotations

from dataclasses import dataclass

from aiohttp import web

from pushrelay.config import Settings
from pushrelay.dispatcher import Dispatcher
from pushrelay.platforms import ApnsSender, FcmSender
from pushrelay.refresher import BackgroundRefresher
from pushrelay.registry import DeviceRegistry, Platform
from pushrelay.server import create_app
from pushrelay.store import JsonFileStore, KeyValueStore
from pushrelay.tokens import TokenManager


@dataclass
class Relay:
    """The wired-up components.  One instance per process.

    Devices and credentials may share one store; their key spaces
    (``devices:`` and ``credential:``) do not overlap.
    """

    registry: DeviceRegistry
    tokens: TokenManager
    dispatcher: Dispatcher
    refresher: BackgroundRefresher

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        device_store: KeyValueStore | None = None,
        credential_store: KeyValueStore | None = None,
    ) -> Relay:
        """Build a relay; stores default to one :class:`JsonFileStore` in ``data_dir``."""
        if device_store is None or credential_store is None:
            shared = JsonFileStore(settings.store_file)
            if device_store is None:
                device_store = shared
            if credential_store is None:
                credential_store = shared

        registry = DeviceRegistry(device_store)
        tokens = TokenManager(credential_store, settings)
        senders = {
            Platform.IOS: ApnsSender(
                settings.apns_bundle_id,
                sandbox=settings.apns_sandbox,
                on_invalid=registry.remove_everywhere,
            ),
            Platform.ANDROID: FcmSender(
                settings.fcm_project_id, on_invalid=registry.remove_everywhere
            ),
        }
        return cls(
            registry=registry,
            tokens=tokens,
            dispatcher=Dispatcher(registry, tokens, senders),
            refresher=BackgroundRefresher(tokens, interval=settings.refresh_interval),
        )

    def web_app(self) -> web.Application:
        return create_app(self.registry, self.dispatcher, self.refresher)
