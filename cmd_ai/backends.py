from __future__ import annotations

import logging
import os
import platform
from typing import Optional

import httpx
from typing_extensions import Protocol

from .config import ProviderConfig
from .engine import EngineLifecycle, ProgressSink
from .errors import ConfigError, TransportError

logger = logging.getLogger(__name__)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
TIMEOUT_SECONDS = 30.0


def os_context() -> str:
    return f"{platform.system()} {platform.release()}"


def shell_context() -> str:
    return os.path.basename(os.getenv("SHELL", "")) or "sh"


def build_prompt(task: str, os_info: str, shell: str, explain_mode: bool) -> str:
    explain_text = "Explain what the command does, then return it.\n" if explain_mode else ""
    return (
        "You are a shell assistant.\n"
        f"OS: {os_info}\n"
        f"Shell: {shell}\n"
        f"{explain_text}"
        "Respond only with safe and correct shell command(s), no commentary or headings.\n"
        f'Task: "{task}"'
    )


class Backend(Protocol):
    name: str

    def generate(self, task: str, os_info: str, shell: str, explain_mode: bool) -> str: ...


def _post_json(provider: str, client: httpx.Client, url: str, **kwargs) -> dict:
    logger.debug("POST %s", url.split("?")[0])
    try:
        resp = client.post(url, **kwargs)
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPStatusError as exc:
        raise TransportError(provider, f"HTTP {exc.response.status_code}: {exc.response.text.strip()}") from exc
    except httpx.HTTPError as exc:
        raise TransportError(provider, f"request failed: {exc}") from exc
    except ValueError as exc:
        raise TransportError(provider, "response body is not JSON") from exc
    if not isinstance(data, dict):
        raise TransportError(provider, "response body is not a JSON object")
    return data


class OpenAIBackend:
    name = "openai"

    def __init__(self, api_key: str, model: Optional[str] = None, client: Optional[httpx.Client] = None) -> None:
        self.api_key = api_key
        self.model = model or DEFAULT_OPENAI_MODEL
        self._client = client or httpx.Client(timeout=TIMEOUT_SECONDS)

    def generate(self, task: str, os_info: str, shell: str, explain_mode: bool) -> str:
        body = {
            "model": self.model,
            "messages": [{"role": "user", "content": build_prompt(task, os_info, shell, explain_mode)}],
            "temperature": 0.3,
        }
        data = _post_json(
            self.name,
            self._client,
            OPENAI_URL,
            json=body,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        try:
            return data["choices"][0]["message"]["content"].strip()
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise TransportError(self.name, "malformed response: no choices[0].message.content") from exc


class GeminiBackend:
    name = "gemini"

    def __init__(self, api_key: str, model: Optional[str] = None, client: Optional[httpx.Client] = None) -> None:
        self.api_key = api_key
        self.model = model or DEFAULT_GEMINI_MODEL
        self._client = client or httpx.Client(timeout=TIMEOUT_SECONDS)

    def generate(self, task: str, os_info: str, shell: str, explain_mode: bool) -> str:
        url = f"{GEMINI_BASE_URL}/models/{self.model}:generateContent"
        body = {"contents": [{"parts": [{"text": build_prompt(task, os_info, shell, explain_mode)}]}]}
        data = _post_json(self.name, self._client, url, json=body, params={"key": self.api_key})
        cand = data.get("candidates") or []
        if not cand:
            raise TransportError(self.name, "response contained no candidates")
        try:
            parts = cand[0]["content"]["parts"]
            return "".join(p.get("text", "") for p in parts).strip()
        except (KeyError, TypeError, AttributeError) as exc:
            raise TransportError(self.name, "malformed response: no candidates[0].content.parts") from exc


class LocalBackend:
    """Runs the prompt through the text-generation pipeline owned by ``lifecycle``.

    Engine errors (download, load, sticky error state) propagate unchanged;
    only failures of the generation call itself become ``TransportError``.
    """

    name = "local"

    def __init__(
        self,
        lifecycle: EngineLifecycle,
        progress: Optional[ProgressSink] = None,
        max_new_tokens: int = 128,
    ) -> None:
        self.lifecycle = lifecycle
        self.progress = progress
        self.max_new_tokens = max_new_tokens

    def generate(self, task: str, os_info: str, shell: str, explain_mode: bool) -> str:
        generator = self.lifecycle.ensure_ready(self.progress)
        messages = [{"role": "user", "content": build_prompt(task, os_info, shell, explain_mode)}]
        try:
            out = generator(messages, max_new_tokens=self.max_new_tokens, do_sample=False)
        except Exception as exc:
            raise TransportError(self.name, f"generation failed: {exc}") from exc
        try:
            generated = out[0]["generated_text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise TransportError(self.name, "malformed pipeline output") from exc
        # chat-style pipelines return the whole conversation
        if isinstance(generated, list):
            generated = generated[-1].get("content", "")
        return str(generated).strip()


def get_backend(
    config: ProviderConfig,
    lifecycle: Optional[EngineLifecycle] = None,
    progress: Optional[ProgressSink] = None,
) -> Backend:
    """Return the backend named by ``config.provider``."""
    if config.provider == "openai":
        return OpenAIBackend(config.require_api_key(), config.model)
    if config.provider == "gemini":
        return GeminiBackend(config.require_api_key(), config.model)
    if config.provider == "local":
        if lifecycle is None:
            raise ConfigError("local provider needs an engine lifecycle")
        return LocalBackend(lifecycle, progress)
    raise ConfigError(f"Unknown provider '{config.provider}'")
