"""Tests for pushrelay.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from pushrelay._constants import DATA_DIR, DEFAULT_REFRESH_INTERVAL
from pushrelay.config import Settings


class TestFromEnv:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.apns_sandbox is False
        assert settings.refresh_interval == DEFAULT_REFRESH_INTERVAL
        assert settings.data_dir == DATA_DIR
        assert not settings.apns_configured
        assert not settings.fcm_configured

    def test_reads_all_variables(self, tmp_path):
        settings = Settings.from_env(
            {
                "APNS_PRIVATE_KEY": "apns-pem",
                "APNS_KEY_ID": "KEY",
                "APNS_TEAM_ID": "TEAM",
                "APNS_BUNDLE_ID": "com.example.app",
                "APNS_SANDBOX": "true",
                "FCM_PRIVATE_KEY": "fcm-pem",
                "FCM_CLIENT_EMAIL": "relay@example.com",
                "FCM_PROJECT_ID": "proj",
                "PUSHRELAY_REFRESH_INTERVAL": "600",
                "PUSHRELAY_DATA_DIR": str(tmp_path),
            }
        )
        assert settings.apns_bundle_id == "com.example.app"
        assert settings.apns_sandbox is True
        assert settings.fcm_project_id == "proj"
        assert settings.refresh_interval == 600
        assert settings.store_file == tmp_path / "store.json"
        assert settings.apns_configured
        assert settings.fcm_configured

    @pytest.mark.parametrize("value", ["false", "1", "yes", ""])
    def test_sandbox_only_for_true(self, value):
        assert Settings.from_env({"APNS_SANDBOX": value}).apns_sandbox is False

    def test_sandbox_case_insensitive(self):
        assert Settings.from_env({"APNS_SANDBOX": "TRUE"}).apns_sandbox is True

    def test_bad_interval(self):
        with pytest.raises(ValueError, match="PUSHRELAY_REFRESH_INTERVAL"):
            Settings.from_env({"PUSHRELAY_REFRESH_INTERVAL": "soon"})

    def test_data_dir_expands_user(self):
        settings = Settings.from_env({"PUSHRELAY_DATA_DIR": "~/relay"})
        assert settings.data_dir == Path.home() / "relay"


class TestConfigured:
    def test_apns_needs_key_id_and_team(self):
        assert not Settings(apns_private_key="pem", apns_key_id="KEY").apns_configured
        assert Settings(apns_private_key="pem", apns_key_id="KEY", apns_team_id="T").apns_configured

    def test_fcm_needs_key_and_email(self):
        assert not Settings(fcm_private_key="pem").fcm_configured
        assert Settings(fcm_private_key="pem", fcm_client_email="a@b").fcm_configured
