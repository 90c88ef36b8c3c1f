import pytest

from app.config import Settings

pytestmark = pytest.mark.unit


def test_environment_overrides_defaults(monkeypatch):
    monkeypatch.setenv("REGISTRY_IDLE_TTL_SECONDS", "90")
    monkeypatch.setenv("XFACTORY_API_URL", "http://api.example/api/")
    loaded = Settings(_env_file=None)
    assert loaded.REGISTRY_IDLE_TTL_SECONDS == 90.0
    assert loaded.api_base_url == "http://api.example/api"


def test_setting_names_are_case_sensitive(monkeypatch):
    monkeypatch.setenv("registry_max_entries", "5")
    assert Settings.model_config["case_sensitive"] is True
    assert Settings(_env_file=None).REGISTRY_MAX_ENTRIES == 1000
