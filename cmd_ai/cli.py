from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv  # type: ignore
from rich.logging import RichHandler

from . import completion, ux
from .backends import get_backend
from .config import PROVIDERS, load_config, save_config
from .engine import EngineLifecycle
from .errors import CmdAIError
from .graph import build_graph
from .history import history_path, load_history
from .local_engine import HuggingFaceAssets
from .state import State

# Load .env from the working directory
load_dotenv()

logger = logging.getLogger("cmd_ai")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NO_COMMAND = 2
EXIT_BLOCKED = 3
EXIT_INTERRUPTED = 130

HELP = """
Usage: ai [prompt or command] [--flags]

Examples:
  ai list files in current directory
  ai remove all docker containers
  ai config                    Set your provider and API key
  ai config --provider local   Download the local model and use it
  ai history                   Show history of AI-generated commands
  ai man / --help / -h         Show this help message
  ai install-autocomplete      Install autocomplete to your shell config

Flags:
  --explain     Ask AI to explain the command before returning it
  --dry         Show the command but do not execute it
  --provider    Override the configured provider (openai, gemini, local)
  --verbose     Log debug output to stderr

Autocomplete:
  Run the following to enable autocomplete:
    ai install-autocomplete
"""


def _setup_logging(verbose: bool) -> None:
    level = "DEBUG" if verbose else os.getenv("CMD_AI_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=ux.err_console, show_path=False)],
    )


def parse_args(argv: List[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="ai", description="Natural language to shell command", add_help=False)
    p.add_argument("prompt", nargs="+", help="What you want the command to do")
    p.add_argument("--explain", action="store_true", help="Ask the model to explain the command")
    p.add_argument("--dry", action="store_true", help="Show the command but do not execute it")
    p.add_argument("--provider", choices=PROVIDERS, help="Override the configured provider")
    p.add_argument("--verbose", action="store_true")
    return p.parse_intermixed_args(argv)


def _lifecycle(model: Optional[str]) -> EngineLifecycle:
    return EngineLifecycle(HuggingFaceAssets(model))


def _config(argv: List[str]) -> int:
    p = argparse.ArgumentParser(prog="ai config")
    p.add_argument("--provider", choices=PROVIDERS, default="openai")
    args = p.parse_args(argv)

    if args.provider == "local":
        config = load_config("local")
        lifecycle = _lifecycle(config.model)
        # reconfiguring clears any sticky error from a previous attempt
        lifecycle.reset()
        display = ux.ProgressDisplay("Downloading local model")
        try:
            lifecycle.download(display)
        finally:
            display.close()
        path = save_config("local")
        ux.info(f"\n[green]Local model ready.[/] Provider saved to {path}")
        return EXIT_OK

    if args.provider == "openai":
        ux.info("\nTo use cmd-ai with OpenAI, you need a valid OpenAI API key.")
        ux.info("1. Go to https://platform.openai.com/account/api-keys")
        ux.info("2. Click “+ Create new secret key”")
        ux.info('3. Copy the key (starts with "sk-...") and paste it below\n')
    else:
        ux.info("\nTo use cmd-ai with Gemini, create a key at https://aistudio.google.com/app/apikey\n")
    key = ux.ask(f"Paste your {args.provider} API key: ", is_password=True)
    path = save_config(args.provider, key)
    ux.info(f"\n[green]API key saved to {path}.[/]")
    ux.info("You can now run commands like:\n  ai list all files in this folder\n")
    return EXIT_OK


def _history() -> int:
    history = load_history()
    if not history:
        ux.info(f"No command history found at {history_path()}.")
        return EXIT_OK
    for idx, entry in enumerate(history, start=1):
        ux.plain(
            f"\n#{idx} ({entry.get('timestamp')}) [{entry.get('provider', '?')}]\n"
            f"Prompt: {entry.get('prompt')}\n"
            f"Command:\n{entry.get('command')}\n"
            f"Executed: {entry.get('executed')}"
            + (f"\nNotes: {entry['notes']}" if entry.get("notes") else "")
        )
    return EXIT_OK


def _install_autocomplete() -> int:
    out = completion.install()
    ux.info(f"Autocomplete script written to: {out['script']}")
    rc = out["rc_file"]
    if rc is None:
        ux.info("\nCould not detect shell config file automatically.")
        ux.info(f"Please manually add this line to your shell config:\n   source {out['script']}\n")
    elif out["rc_updated"]:
        ux.info(f"Updated {rc} to include autocomplete.\nRestart your terminal or run:\n   source {rc}\n")
    else:
        ux.info(f"{rc} already includes the autocomplete script.")
    return EXIT_OK


def _run(argv: List[str]) -> int:
    args = parse_args(argv)
    _setup_logging(args.verbose)

    config = load_config(args.provider)
    display = ux.ProgressDisplay()
    lifecycle = _lifecycle(config.model) if config.provider == "local" else None
    backend = get_backend(config, lifecycle, display)
    app = build_graph(backend, config.match_mode)

    state: State = {"task": " ".join(args.prompt), "explain": args.explain, "dry_run": args.dry}
    try:
        out = app.invoke(state)
    finally:
        display.close()

    if not out.get("command"):
        return EXIT_NO_COMMAND
    if out.get("approval") == "blocked":
        return EXIT_BLOCKED
    result = out.get("result") or {}
    return int(result.get("exit_code") or 0)


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    try:
        if not argv or argv[0] in ("man", "--help", "-h"):
            ux.plain(HELP)
            return EXIT_OK
        if argv[0] == "config":
            return _config(argv[1:])
        if argv[0] == "history":
            return _history()
        if argv[0] in ("install-autocomplete", "autocomplete"):
            return _install_autocomplete()
        return _run(argv)
    except CmdAIError as exc:
        logger.debug("aborting", exc_info=True)
        ux.error(str(exc))
        return EXIT_ERROR
    except (KeyboardInterrupt, EOFError):
        ux.info("\nOperation cancelled.")
        return EXIT_INTERRUPTED
