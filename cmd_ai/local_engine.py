from __future__ import annotations

import importlib
import logging
import os
from typing import Any, List, Optional

from .engine import ProgressSink
from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_MODEL = "Qwen/Qwen2.5-0.5B-Instruct"

# Files a text-generation pipeline needs; everything else in the repo is skipped.
_WANTED_SUFFIXES = (".json", ".safetensors", ".model", ".txt", ".tiktoken")


def _require(module: str, extra: str = "local"):
    try:
        return importlib.import_module(module)
    except ModuleNotFoundError as exc:
        raise ConfigError(
            f"{module} is not installed. Install it to use the local provider:\n"
            f"  pip install 'cmd-ai[{extra}]'"
        ) from exc


class HuggingFaceAssets:
    """Model files from the Hugging Face Hub cache and a transformers pipeline.

    Env:
      - CMD_AI_LOCAL_MODEL: repo id, default Qwen/Qwen2.5-0.5B-Instruct
      - HF_HOME / HF_HUB_CACHE: cache location (honoured by huggingface_hub)
    """

    def __init__(self, repo_id: Optional[str] = None, cache_dir: Optional[str] = None) -> None:
        self.repo_id = repo_id or os.getenv("CMD_AI_LOCAL_MODEL", DEFAULT_LOCAL_MODEL)
        self.cache_dir = cache_dir

    def is_cached(self) -> bool:
        hub = _require("huggingface_hub")
        try:
            hub.snapshot_download(repo_id=self.repo_id, cache_dir=self.cache_dir, local_files_only=True)
        except Exception as exc:
            # LocalEntryNotFoundError, or a partially populated snapshot
            logger.debug("model %s not cached: %s", self.repo_id, exc)
            return False
        return True

    def _files(self, hub) -> List[str]:
        files = hub.list_repo_files(self.repo_id)
        return [f for f in files if f.endswith(_WANTED_SUFFIXES)]

    def download(self, progress: ProgressSink) -> None:
        hub = _require("huggingface_hub")
        files = self._files(hub)
        if not files:
            raise RuntimeError(f"no model files found in {self.repo_id}")
        logger.info("downloading %d files from %s", len(files), self.repo_id)
        for done, filename in enumerate(files, start=1):
            hub.hf_hub_download(repo_id=self.repo_id, filename=filename, cache_dir=self.cache_dir)
            progress(done * 100 / len(files))

    def load(self, progress: ProgressSink) -> Any:
        hub = _require("huggingface_hub")
        transformers = _require("transformers")
        path = hub.snapshot_download(repo_id=self.repo_id, cache_dir=self.cache_dir, local_files_only=True)
        progress(30)
        generator = transformers.pipeline("text-generation", model=path)
        progress(90)
        return generator
