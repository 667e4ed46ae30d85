"""
config/settings.py — Runtime settings

config.yaml supplies the structure, the environment (or .env) supplies the
two secrets. Sections are validated field by field when parsed; anything
that depends on more than one field is checked by validate_all() at startup.
The parameters section is turned into a frozen ParameterPolicy once, and
that policy is all the adjustment rules ever see.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from promptvolley.agent.state import ParameterPolicy

DEFAULT_CONFIG_PATH = Path("config/config.yaml")
CONFIG_PATH_ENV = "PROMPTVOLLEY_CONFIG"


class ConfigError(Exception):
    """One or more cross-field configuration problems. The message lists all of them."""


# ─────────────────────────────────────────────────────────────────────────────
# Sections
# ─────────────────────────────────────────────────────────────────────────────

class RetrySettings(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0.0)
    max_delay: float = Field(default=30.0, ge=0.0)


class LLMSettings(BaseModel):
    """Chat model shared by the intent detectors and the rewriter."""

    model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.5, ge=0.0, le=2.0)
    max_tokens: int = Field(default=600, ge=1)
    base_url: Optional[str] = None      # any OpenAI-compatible server
    timeout_seconds: float = Field(default=60.0, gt=0)
    retry: RetrySettings = Field(default_factory=RetrySettings)


class GenerationSettings(BaseModel):
    """Text-to-image service."""

    base_url: str = "https://dream-gateway.livepeer.cloud"
    endpoint: str = "/text-to-image"
    width: int = Field(default=1024, ge=1)
    height: int = Field(default=1024, ge=1)
    image_count: int = Field(default=2, ge=1)
    max_retries: int = Field(default=3, ge=0)
    overload_status_codes: List[int] = Field(default_factory=lambda: [503])
    timeout_seconds: Optional[float] = 180.0

    @field_validator("endpoint")
    @classmethod
    def _absolute_endpoint(cls, v: str) -> str:
        return "/" + v.lstrip("/")

    @property
    def url(self) -> str:
        return self.base_url.rstrip("/") + self.endpoint


class ParametersSettings(BaseModel):
    """Starting state, text-model floors and the bounds every adjustment is clamped to."""

    default_model_id: str = "ByteDance/SDXL-Lightning"
    default_lora_model_id: str = ""
    default_guidance_scale: float = 7.5
    default_steps: int = 20
    text_model_id: str = "black-forest-labs/FLUX.1-dev"
    min_steps: int = Field(default=1, ge=1)
    max_steps: int = 50
    steps_adjustment: int = Field(default=3, ge=1)
    min_guidance_scale: float = 1.0
    max_guidance_scale: float = 35.0
    guidance_adjustment: float = Field(default=3.0, gt=0)
    text_min_steps: int = 21
    text_min_guidance_scale: float = 28.0

    @field_validator("default_model_id", "text_model_id")
    @classmethod
    def _model_id_present(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("model id must not be blank")
        return v


class HistorySettings(BaseModel):
    backend: Literal["memory", "sqlite"] = "sqlite"
    sqlite_path: str = "./data/sqlite/history.db"
    context_volleys: int = Field(default=4, ge=1)


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = Field(default=100, ge=1)
    backup_count: int = Field(default=5, ge=0)
    console_output: bool = False
    json_format: bool = True

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


# ─────────────────────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────────────────────


def _outside(name: str, value: float, low: float, high: float) -> Optional[str]:
    if low <= value <= high:
        return None
    return f"parameters.{name} ({value}) must be within [{low}, {high}]."


class Settings(BaseSettings):
    """
    Process environment beats .env, which beats config.yaml, which beats
    the field defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    generation_api_key: Optional[str] = Field(default=None, alias="GENERATION_API_KEY")

    llm: LLMSettings = Field(default_factory=LLMSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    parameters: ParametersSettings = Field(default_factory=ParametersSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def parameter_policy(self) -> "ParameterPolicy":
        from promptvolley.agent.state import ParameterPolicy, ParameterState

        p = self.parameters
        return ParameterPolicy(
            default_state=ParameterState(
                model_id=p.default_model_id,
                lora_model_id=p.default_lora_model_id,
                guidance_scale=p.default_guidance_scale,
                steps=p.default_steps,
            ),
            text_model_id=p.text_model_id,
            min_steps=p.min_steps,
            max_steps=p.max_steps,
            steps_adjustment=p.steps_adjustment,
            min_guidance_scale=p.min_guidance_scale,
            max_guidance_scale=p.max_guidance_scale,
            guidance_adjustment=p.guidance_adjustment,
            text_min_steps=p.text_min_steps,
            text_min_guidance_scale=p.text_min_guidance_scale,
        )

    def problems(self) -> list[str]:
        """Cross-field problems, in a stable order. Empty when the config is usable."""
        found: list[str] = []
        if not self.openai_api_key:
            found.append("OPENAI_API_KEY is not set (environment or .env).")

        p = self.parameters
        if p.min_steps > p.max_steps:
            found.append(f"parameters.min_steps ({p.min_steps}) exceeds max_steps ({p.max_steps}).")
        else:
            found += filter(None, [
                _outside("default_steps", p.default_steps, p.min_steps, p.max_steps),
                _outside("text_min_steps", p.text_min_steps, p.min_steps, p.max_steps),
            ])

        if p.min_guidance_scale > p.max_guidance_scale:
            found.append(
                f"parameters.min_guidance_scale ({p.min_guidance_scale}) exceeds "
                f"max_guidance_scale ({p.max_guidance_scale})."
            )
        else:
            lo, hi = p.min_guidance_scale, p.max_guidance_scale
            found += filter(None, [
                _outside("default_guidance_scale", p.default_guidance_scale, lo, hi),
                _outside("text_min_guidance_scale", p.text_min_guidance_scale, lo, hi),
            ])

        codes = self.generation.overload_status_codes
        if not codes:
            found.append("generation.overload_status_codes is empty.")
        elif any(200 <= c < 300 for c in codes):
            found.append("generation.overload_status_codes must not contain 2xx codes.")
        return found

    def validate_all(self) -> None:
        """Raise ConfigError with a numbered list of every problem()."""
        found = self.problems()
        if not found:
            return
        lines = "\n".join(f"  {n}. {msg}" for n, msg in enumerate(found, start=1))
        raise ConfigError(
            f"\n\nCannot start: {len(found)} configuration problem(s):\n\n{lines}\n\n"
            f"Edit config/config.yaml or .env and try again.\n"
        )


# ─────────────────────────────────────────────────────────────────────────────
# Loading
# ─────────────────────────────────────────────────────────────────────────────

_singleton: Optional[Settings] = None
_singleton_lock = threading.RLock()  # get_settings() re-enters via load_settings()

_SECTIONS = frozenset(Settings.model_fields) - {"openai_api_key", "generation_api_key"}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """--config wins, then $PROMPTVOLLEY_CONFIG, then config/config.yaml."""
    if config_path is not None:
        return Path(config_path)
    from_env = os.environ.get(CONFIG_PATH_ENV)
    return Path(from_env) if from_env else DEFAULT_CONFIG_PATH


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Read the YAML file (missing file means defaults) and replace the singleton."""
    global _singleton
    path = _resolve_config_path(config_path)
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) if path.exists() else None
    sections = {k: v for k, v in (raw or {}).items() if k in _SECTIONS}

    loaded = Settings(**sections)
    with _singleton_lock:
        _singleton = loaded
    return loaded


def get_settings() -> Settings:
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is None:
            load_settings()
        return _singleton  # type: ignore[return-value]
