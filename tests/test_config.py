import pytest

from clinicnav import config


_ENV_VARS = (
    "CLINICNAV_LOG_LEVEL",
    "LOG_LEVEL",
    "CLINICNAV_NAV_CONFIG_FILE",
    "CLINICNAV_DEFAULT_SECTION",
    "CLINICNAV_BADGE_CAP",
    "CLINICNAV_MAX_SESSIONS",
    "CLINICNAV_HOST",
    "CLINICNAV_PORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    config.reset_settings_cache()
    yield
    config.reset_settings_cache()


def test_defaults():
    settings = config.get_settings()
    assert settings.log_level == "INFO"
    assert settings.nav_config_file is None
    assert settings.default_section == "home"
    assert settings.badge_cap == 99
    assert settings.max_sessions == 500
    assert settings.port == 8000


def test_environment_overrides(monkeypatch, tmp_path):
    nav_file = tmp_path / "nav.json"
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("CLINICNAV_NAV_CONFIG_FILE", str(nav_file))
    monkeypatch.setenv("CLINICNAV_DEFAULT_SECTION", "inbox")
    monkeypatch.setenv("CLINICNAV_BADGE_CAP", "9")
    monkeypatch.setenv("CLINICNAV_MAX_SESSIONS", "0")
    monkeypatch.setenv("CLINICNAV_PORT", "9001")
    settings = config.get_settings()
    assert settings.log_level == "DEBUG"
    assert settings.nav_config_file == nav_file
    assert settings.default_section == "inbox"
    assert settings.badge_cap == 9
    assert settings.max_sessions == 1
    assert settings.port == 9001


def test_service_log_level_wins(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("CLINICNAV_LOG_LEVEL", "warning")
    assert config.get_settings().log_level == "WARNING"


def test_settings_are_cached(monkeypatch):
    first = config.get_settings()
    monkeypatch.setenv("CLINICNAV_BADGE_CAP", "5")
    assert config.get_settings() is first


def test_invalid_integer_is_reported(monkeypatch):
    monkeypatch.setenv("CLINICNAV_MAX_SESSIONS", "lots")
    with pytest.raises(ValueError, match="CLINICNAV_MAX_SESSIONS"):
        config.get_settings()
