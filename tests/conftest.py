"""Shared fixtures: throwaway signing keys, settings and a controllable clock."""

from __future__ import annotations

import base64
import json
from typing import Any

import pytest
from Crypto.PublicKey import ECC, RSA

from pushrelay.config import Settings

TENANT = "t" * 32
OTHER_TENANT = "u" * 32


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def decode_segment(segment: str) -> dict[str, Any]:
    """Decode one base64url JWT segment (padding restored)."""
    padded = segment + "=" * (-len(segment) % 4)
    result: dict[str, Any] = json.loads(base64.urlsafe_b64decode(padded))
    return result


@pytest.fixture(scope="session")
def ec_key() -> ECC.EccKey:
    return ECC.generate(curve="P-256")


@pytest.fixture(scope="session")
def rsa_key() -> RSA.RsaKey:
    return RSA.generate(2048)


@pytest.fixture
def settings(ec_key: ECC.EccKey, rsa_key: RSA.RsaKey, tmp_path) -> Settings:
    return Settings(
        apns_private_key=ec_key.export_key(format="PEM"),
        apns_key_id="ABC123DEFG",
        apns_team_id="TEAM456XYZ",
        apns_bundle_id="com.example.app",
        apns_sandbox=True,
        fcm_private_key=rsa_key.export_key(pkcs=8).decode("ascii"),
        fcm_client_email="relay@example-project.iam.gserviceaccount.com",
        fcm_project_id="example-project",
        data_dir=tmp_path,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
