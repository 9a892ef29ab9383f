from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ConfigError
from .safety import MatchMode

logger = logging.getLogger(__name__)

PROVIDERS = ("openai", "gemini", "local")
DEFAULT_PROVIDER = "openai"

_API_KEY_ENV = {"openai": "OPENAI_API_KEY", "gemini": "GEMINI_API_KEY"}
_MODEL_ENV = {"openai": "OPENAI_MODEL", "gemini": "GEMINI_MODEL", "local": "CMD_AI_LOCAL_MODEL"}


def config_path() -> Path:
    return Path(os.getenv("CMD_AI_CONFIG_PATH") or Path.home() / ".ai-config.json")


@dataclass
class ProviderConfig:
    provider: str = DEFAULT_PROVIDER
    api_key: Optional[str] = None
    model: Optional[str] = None
    match_mode: MatchMode = MatchMode.PREFIX

    def require_api_key(self) -> str:
        if self.provider == "local":
            return ""
        if not self.api_key:
            raise ConfigError(
                f"Missing {self.provider} API key. Run 'ai config' or set {_API_KEY_ENV[self.provider]}."
            )
        return self.api_key


def validate_api_key(provider: str, key: str) -> str:
    key = key.strip()
    if provider == "openai" and (not key.startswith("sk-") or len(key) < 30):
        raise ConfigError('Invalid key format. It should start with "sk-" and be longer than 30 characters.')
    if provider == "gemini" and len(key) < 20:
        raise ConfigError("Invalid key format. Gemini API keys are at least 20 characters long.")
    return key


def _read_file(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def load_config(provider_override: Optional[str] = None) -> ProviderConfig:
    """Merge the JSON config file with environment overrides.

    Env:
      - CMD_AI_PROVIDER: openai | gemini | local
      - OPENAI_API_KEY / GEMINI_API_KEY
      - OPENAI_MODEL / GEMINI_MODEL / CMD_AI_LOCAL_MODEL
      - CMD_AI_MATCH_MODE: prefix (default) | substring
    """
    data = _read_file(config_path())
    provider = (provider_override or os.getenv("CMD_AI_PROVIDER") or data.get("provider") or DEFAULT_PROVIDER).lower()
    if provider not in PROVIDERS:
        raise ConfigError(f"Unknown provider '{provider}'. Choose one of: {', '.join(PROVIDERS)}")

    api_key = None
    if provider in _API_KEY_ENV:
        api_key = os.getenv(_API_KEY_ENV[provider]) or data.get("apiKeys", {}).get(provider)
        # files written by older versions hold a single OpenAI key
        if not api_key and provider == "openai":
            api_key = data.get("apiKey")

    raw_mode = os.getenv("CMD_AI_MATCH_MODE") or data.get("matchMode") or MatchMode.PREFIX.value
    try:
        match_mode = MatchMode(raw_mode.lower())
    except ValueError as exc:
        raise ConfigError(f"Unknown match mode '{raw_mode}'. Use 'prefix' or 'substring'.") from exc

    model = os.getenv(_MODEL_ENV[provider]) or data.get("models", {}).get(provider)
    logger.debug("loaded config provider=%s model=%s match_mode=%s", provider, model, match_mode.value)
    return ProviderConfig(provider=provider, api_key=api_key, model=model, match_mode=match_mode)


def save_config(provider: str, api_key: Optional[str] = None) -> Path:
    """Persist the chosen provider (and its key) without dropping other keys."""
    if provider not in PROVIDERS:
        raise ConfigError(f"Unknown provider '{provider}'. Choose one of: {', '.join(PROVIDERS)}")
    path = config_path()
    data = _read_file(path)
    data["provider"] = provider
    if api_key:
        data.setdefault("apiKeys", {})[provider] = validate_api_key(provider, api_key)
        if provider == "openai":
            data["apiKey"] = data["apiKeys"]["openai"]
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    try:
        os.chmod(path, 0o600)
    except OSError:
        logger.debug("could not restrict permissions on %s", path)
    return path
