"""
Unit Tests for Configuration

Tests for settings and configuration management.
"""

from myiep.config import Settings


def test_settings_defaults():
    """Test default settings values."""
    settings = Settings(_env_file=None)

    assert settings.ENVIRONMENT in ["local", "staging", "production"]
    assert settings.DATABASE_URL.startswith("sqlite+aiosqlite://")
    assert settings.BACKUP_FILE_NAME == "my-iep-backup.json"
    assert settings.MEDIA_FOLDER_NAME == "MyIEP_Media"
    assert settings.SYNC_DEBOUNCE_SECONDS == 1.5
    assert settings.SYNC_POLL_INTERVAL_SECONDS == 60
    assert settings.REMOTE_AHEAD_TOLERANCE_MS == 10_000


def test_settings_environment_specific():
    """Test environment-specific behavior."""
    settings_local = Settings(_env_file=None, ENVIRONMENT="local")
    assert settings_local.is_local is True
    assert settings_local.is_production is False

    settings_prod = Settings(_env_file=None, ENVIRONMENT="production")
    assert settings_prod.is_local is False
    assert settings_prod.is_production is True


def test_drive_configured_requires_real_credentials():
    """Test Drive is only used with a real client ID and API key."""
    empty = Settings(_env_file=None, GOOGLE_CLIENT_ID="", GOOGLE_API_KEY="")
    assert empty.drive_configured is False
    assert (
        Settings(
            _env_file=None, GOOGLE_CLIENT_ID="YOUR_CLIENT_ID.apps", GOOGLE_API_KEY="key"
        ).drive_configured
        is False
    )
    assert (
        Settings(
            _env_file=None, GOOGLE_CLIENT_ID="123.apps.googleusercontent.com", GOOGLE_API_KEY="key"
        ).drive_configured
        is True
    )


def test_empty_timeout_means_transport_default(monkeypatch):
    """Test an empty NETWORK_TIMEOUT_SECONDS env value maps to None."""
    monkeypatch.setenv("NETWORK_TIMEOUT_SECONDS", "")
    assert Settings(_env_file=None).NETWORK_TIMEOUT_SECONDS is None

    monkeypatch.setenv("NETWORK_TIMEOUT_SECONDS", "12.5")
    assert Settings(_env_file=None).NETWORK_TIMEOUT_SECONDS == 12.5
