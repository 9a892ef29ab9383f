from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

COMPLETION_SCRIPT = """\
# ai-cli autocomplete

_ai_cli_completions() {
  local cur opts
  COMPREPLY=()
  cur="${COMP_WORDS[COMP_CWORD]}"
  opts="config history man install-autocomplete --help -h --dry --explain --provider"

  if [[ ${cur} == -* ]]; then
    COMPREPLY=( $(compgen -W "--dry --explain --provider --verbose --help -h" -- ${cur}) )
    return 0
  fi

  COMPREPLY=( $(compgen -W "${opts}" -- ${cur}) )
  return 0
}

complete -F _ai_cli_completions ai
"""


def rc_file(home: Path, shell: str) -> Optional[Path]:
    if "zsh" in shell:
        return home / ".zshrc"
    if "bash" in shell:
        return home / ".bashrc"
    return None


def install(home: Optional[Path] = None, shell: Optional[str] = None) -> dict:
    """Write the completion script into ``home`` and source it from the shell rc.

    Returns {'script': Path, 'rc_file': Path|None, 'rc_updated': bool}.
    """
    home = home or Path.home()
    shell = os.getenv("SHELL", "") if shell is None else shell
    target = home / ".cmd-ai-completion.sh"
    target.write_text(COMPLETION_SCRIPT, encoding="utf-8")
    target.chmod(0o644)
    logger.debug("wrote completion script to %s", target)

    rc = rc_file(home, shell)
    updated = False
    if rc is not None:
        source_cmd = f"source {target}"
        content = rc.read_text(encoding="utf-8") if rc.exists() else ""
        if source_cmd not in content:
            with rc.open("a", encoding="utf-8") as fh:
                fh.write(f"\n# cmd-ai autocomplete\n{source_cmd}\n")
            updated = True
    return {"script": target, "rc_file": rc, "rc_updated": updated}
