"""Relay configuration, read from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from pushrelay._constants import DATA_DIR, DEFAULT_REFRESH_INTERVAL


@dataclass(frozen=True)
class Settings:
    """Publisher secrets and deployment options.

    Secrets (private keys, key/team ids, service account email) are never
    handed to bridges; they only feed :class:`~pushrelay.tokens.TokenManager`.
    """

    apns_private_key: str = ""
    apns_key_id: str = ""
    apns_team_id: str = ""
    apns_bundle_id: str = ""
    apns_sandbox: bool = False

    fcm_private_key: str = ""
    fcm_client_email: str = ""
    fcm_project_id: str = ""

    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    data_dir: Path = field(default=DATA_DIR)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        raw_interval = env.get("PUSHRELAY_REFRESH_INTERVAL", "")
        try:
            interval = float(raw_interval) if raw_interval else DEFAULT_REFRESH_INTERVAL
        except ValueError:
            raise ValueError(
                f"PUSHRELAY_REFRESH_INTERVAL must be a number of seconds, got '{raw_interval}'."
            ) from None
        data_dir = env.get("PUSHRELAY_DATA_DIR")
        return cls(
            apns_private_key=env.get("APNS_PRIVATE_KEY", ""),
            apns_key_id=env.get("APNS_KEY_ID", ""),
            apns_team_id=env.get("APNS_TEAM_ID", ""),
            apns_bundle_id=env.get("APNS_BUNDLE_ID", ""),
            apns_sandbox=env.get("APNS_SANDBOX", "").strip().lower() == "true",
            fcm_private_key=env.get("FCM_PRIVATE_KEY", ""),
            fcm_client_email=env.get("FCM_CLIENT_EMAIL", ""),
            fcm_project_id=env.get("FCM_PROJECT_ID", ""),
            refresh_interval=interval,
            data_dir=Path(data_dir).expanduser() if data_dir else DATA_DIR,
        )

    @property
    def apns_configured(self) -> bool:
        return bool(self.apns_private_key and self.apns_key_id and self.apns_team_id)

    @property
    def fcm_configured(self) -> bool:
        return bool(self.fcm_private_key and self.fcm_client_email)

    @property
    def store_file(self) -> Path:
        return self.data_dir / "store.json"
