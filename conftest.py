"""
conftest.py — Shared test isolation

Every test starts without provider credentials, without a local .env file,
with a fresh settings singleton and with no bound turn context.
"""
import pytest
import structlog
from pydantic_settings import SettingsConfigDict

_ISOLATED_ENV = ("OPENAI_API_KEY", "GENERATION_API_KEY", "PROMPTVOLLEY_CONFIG")


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Settings() sees only what the test provides explicitly."""
    import promptvolley.config.settings as settings_module

    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)

    monkeypatch.setattr(
        settings_module.Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_nested_delimiter="__",
            extra="ignore",
            case_sensitive=False,
        ),
    )
    monkeypatch.setattr(settings_module, "_singleton", None)
    yield
    structlog.contextvars.clear_contextvars()
