from __future__ import annotations

from typing import Dict, Optional
from typing_extensions import TypedDict

from .safety import DangerVerdict


class State(TypedDict, total=False):
    # inputs
    task: str
    explain: bool
    dry_run: bool

    # backend reply
    raw_response: str

    # parsed candidate; empty command means NoCommandFound
    command: str
    explanation: Optional[str]
    parse_error: str

    # safety
    verdict: DangerVerdict

    # approval: 'approved' | 'cancelled' | 'blocked' | 'dry_run'
    approval: str

    # execution
    result: Dict  # {'exit_code':int, 'stdout':str, 'stderr':str}
    executed: bool
