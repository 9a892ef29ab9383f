from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


def history_path() -> Path:
    return Path(os.getenv("CMD_AI_HISTORY_PATH") or Path.home() / ".ai-command-history.json")


@dataclass
class HistoryEntry:
    prompt: str
    command: str
    executed: bool
    provider: str
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    notes: Optional[str] = None


def load_history(path: Optional[Path] = None) -> List[dict]:
    path = path or history_path()
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("history file %s is not valid JSON; starting fresh", path)
            return []
        return data if isinstance(data, list) else []
    return []


def append_entry(entry: HistoryEntry, path: Optional[Path] = None) -> None:
    path = path or history_path()
    history = load_history(path)
    history.append({k: v for k, v in asdict(entry).items() if v is not None})
    path.write_text(json.dumps(history, indent=2), encoding="utf-8")
