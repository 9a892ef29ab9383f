import pytest

_ENV_VARS = (
    "CMD_AI_PROVIDER",
    "CMD_AI_MATCH_MODE",
    "CMD_AI_LOCAL_MODEL",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point config and history at a temp dir and drop provider env vars."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CMD_AI_CONFIG_PATH", str(tmp_path / "ai-config.json"))
    monkeypatch.setenv("CMD_AI_HISTORY_PATH", str(tmp_path / "history.json"))
    return tmp_path
