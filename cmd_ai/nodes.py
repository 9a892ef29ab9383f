from __future__ import annotations

import logging
import subprocess
from typing import Callable, Dict

from . import ux
from .backends import Backend, os_context, shell_context
from .history import HistoryEntry, append_entry
from .parser import NoCommandFound, parse_response
from .safety import MatchMode, classify
from .state import State

logger = logging.getLogger(__name__)


def generate(state: State, *, backend: Backend) -> State:
    # TransportError and engine errors end the invocation; the CLI reports them
    logger.info("asking %s for: %s", backend.name, state["task"])
    raw = backend.generate(state["task"], os_context(), shell_context(), bool(state.get("explain")))
    ux.show_response(raw)
    return {"raw_response": raw}


def parse(state: State) -> State:
    outcome = parse_response(state.get("raw_response", ""), explain_mode=bool(state.get("explain")))
    if isinstance(outcome, NoCommandFound):
        ux.show_no_command(outcome.raw, outcome.reason)
        return {"command": "", "parse_error": outcome.reason}
    ux.show_command(outcome.command, outcome.explanation)
    return {"command": outcome.command, "explanation": outcome.explanation}


def route_after_parse(state: State) -> str:
    return "danger_check" if state.get("command") else "record"


def danger_check(state: State, *, match_mode: MatchMode = MatchMode.PREFIX) -> State:
    verdict = classify(state["command"], match_mode)
    if verdict.dangerous:
        logger.info("blocked by pattern %r in segment %r", verdict.matched_pattern, verdict.segment)
    return {"verdict": verdict}


def approval_gate(state: State, *, ask: Callable[[str], str] = ux.ask) -> State:
    verdict = state.get("verdict")
    if verdict is not None and verdict.dangerous:
        ux.show_danger(verdict)
        return {"approval": "blocked"}
    if state.get("dry_run"):
        answer = ask("\n[Dry run] Press ENTER to simulate, or Ctrl+C to cancel: ")
    else:
        answer = ask("\nDo you want to run it? (Y/n): ")
    if answer.strip().lower() not in ("", "y", "yes"):
        ux.info("Operation cancelled.")
        return {"approval": "cancelled"}
    if state.get("dry_run"):
        ux.info("\n[Dry run] Command not executed.")
        return {"approval": "dry_run"}
    return {"approval": "approved"}


def route_after_approval(state: State) -> str:
    return "run" if state.get("approval") == "approved" else "record"


def run_command(state: State) -> State:
    cmd = state["command"]
    logger.debug("executing: %s", cmd)
    proc = subprocess.run(cmd, shell=True, capture_output=True, text=True)
    res: Dict[str, object] = {"exit_code": proc.returncode, "stdout": proc.stdout, "stderr": proc.stderr}
    ux.show_result(res)
    return {"result": res, "executed": True}


def _notes(state: State) -> str:
    if state.get("parse_error"):
        return f"no command found: {state['parse_error']}"
    verdict = state.get("verdict")
    if verdict is not None and verdict.dangerous:
        return f"blocked as dangerous: {verdict.matched_pattern} ({verdict.reason})"
    approval = state.get("approval")
    if approval in ("cancelled", "dry_run"):
        return approval.replace("_", " ")
    result = state.get("result") or {}
    if result.get("exit_code"):
        return f"exit code {result['exit_code']}"
    return ""


def record(state: State, *, provider: str) -> State:
    entry = HistoryEntry(
        prompt=state.get("task", ""),
        command=state.get("command") or state.get("raw_response", ""),
        executed=bool(state.get("executed")),
        provider=provider,
        notes=_notes(state) or None,
    )
    try:
        append_entry(entry)
    except OSError as exc:
        logger.warning("could not write history: %s", exc)
    return {"executed": entry.executed}
