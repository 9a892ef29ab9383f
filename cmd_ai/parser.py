"""Turn an unstructured model reply into a command/explanation pair.

Replies degrade from "fenced code block" to "plain command lines" to nothing
usable at all. The last case is reported as ``NoCommandFound`` so the caller
can show the raw text instead of running prose.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedCommand:
    command: str
    explanation: Optional[str] = None


@dataclass(frozen=True)
class NoCommandFound:
    raw: str
    reason: str = "no command-like content in reply"


ParseOutcome = Union[ParsedCommand, NoCommandFound]


# Lines that are prose, not shell. Matched against a stripped line.
CONVERSATIONAL_OPENERS: List[str] = [
    # greetings and acknowledgements
    r"^(?:hi|hello|hey|greetings|sure|certainly|of course|absolutely|okay|ok|great|alright)\b",
    # apologies and refusals
    r"^(?:sorry|i'?m sorry|i am sorry|i apologi[sz]e|unfortunately|regrettably)\b",
    r"^(?:i\s+(?:can'?t|cannot|can\s+not|won'?t|am\s+(?:not\s+able|unable))|i'?m\s+(?:not\s+able|unable))\b",
    r"^as an ai\b",
    # meta-commentary about the answer itself
    r"^(?:here(?:'s|\s+is|\s+are)|below\s+is|the\s+following|you\s+can\s+(?:use|run|try)|to\s+do\s+(?:this|that))\b",
    r"^i\s+(?:would|'d|will|'ll)\s+(?:suggest|recommend|use)\b",
    # "Label:" prefixes such as "Command:" or "Explanation:"
    r"^[a-z]\w*(?:[ \t]+\w+){0,2}:(?:\s|$)",
]

# First non-blank character of something that can start a shell line.
COMMAND_START = re.compile(r"""^[`'"]*(?:[\w./~$#\\]|[|&;<>!(){}\[\]*:=+-])""")

# Capitalised sentence ending in punctuation, e.g. "That is not possible."
PROSE_SENTENCE = re.compile(r"^[A-Z][a-z']+(?:\s+\S+){2,}[.!?]$")

_OPENERS: List[Pattern[str]] = [re.compile(p, re.IGNORECASE) for p in CONVERSATIONAL_OPENERS]

_FENCED_BLOCK = re.compile(r"```[\w+.#-]*[ \t]*\r?\n(.*?)(?:```|\Z)", re.DOTALL)
_INLINE_FENCE = re.compile(r"```(.+?)```", re.DOTALL)
# Language tags a one-line fence may open with, e.g. "```bash ls -la```".
_INLINE_LANG_TAG = re.compile(r"^(?:bash|sh|shell|zsh|console|shell-session|powershell|ps1|cmd)[ \t]+", re.IGNORECASE)
_QUOTES = "'\""


def is_conversational(line: str) -> bool:
    text = line.strip()
    return any(pattern.search(text) for pattern in _OPENERS)


def _is_command_line(line: str) -> bool:
    text = line.strip()
    if not text or not COMMAND_START.match(text):
        return False
    return not is_conversational(text) and not PROSE_SENTENCE.match(text)


def _trim_explanation(text: str) -> Optional[str]:
    kept: List[str] = []
    for line in text.splitlines():
        if is_conversational(line):
            break
        kept.append(line)
    explanation = "\n".join(kept).strip()
    return explanation or None


def _strip_backticks(command: str) -> str:
    if len(command) >= 2 and command[0] == "`" and command[-1] == "`":
        inner = command[1:-1]
        # `ls` or ``ls``, but not `a` | `b`
        if "`" not in inner or (inner.startswith("`") and inner.endswith("`")):
            return inner
    if command.count("`") % 2 == 1:
        if command.startswith("`"):
            return command[1:]
        if command.endswith("`"):
            return command[:-1]
    return command


def clean_command(text: str) -> str:
    """Strip padding quotes, backticks and a leading prompt marker."""
    command = text
    while True:
        previous = command
        command = _strip_backticks(command.strip()).strip()
        for quote in _QUOTES:
            # a wrapping pair, or an unbalanced stray quote at either end
            if len(command) >= 2 and command[0] == quote and command[-1] == quote and command.count(quote) == 2:
                command = command[1:-1]
            elif command.count(quote) % 2 == 1:
                if command.startswith(quote):
                    command = command[1:]
                elif command.endswith(quote):
                    command = command[:-1]
        command = command.strip()
        # "# " opening a multi-line block is a comment, not a root prompt
        if command.startswith("$ ") or (command.startswith("# ") and "\n" not in command):
            command = command[2:]
        if command == previous:
            return command


def _from_json(text: str, explain_mode: bool) -> Optional[ParsedCommand]:
    stripped = text.strip()
    if not (stripped.startswith("{") and stripped.endswith("}")):
        return None
    try:
        data = json.loads(stripped)
    except ValueError:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("command"), str):
        return None
    command = clean_command(data["command"])
    if not command:
        return None
    explanation = data.get("explanation") if explain_mode else None
    if not isinstance(explanation, str) or not explanation.strip():
        explanation = None
    return ParsedCommand(command=command, explanation=explanation and explanation.strip())


def _from_fence(text: str, explain_mode: bool) -> Optional[ParsedCommand]:
    match = _FENCED_BLOCK.search(text)
    if match is not None:
        body = match.group(1)
    else:
        match = _INLINE_FENCE.search(text)
        if match is None:
            return None
        body = _INLINE_LANG_TAG.sub("", match.group(1).strip(), count=1)
    # ```json {"command": ...}```
    nested = _from_json(body, explain_mode)
    if nested is not None:
        return nested
    command = clean_command(body)
    explanation = _trim_explanation(text[: match.start()]) if explain_mode else None
    return ParsedCommand(command=command, explanation=explanation)


def _from_lines(text: str, explain_mode: bool) -> Optional[ParsedCommand]:
    lines = text.splitlines()
    for index, line in enumerate(lines):
        if not _is_command_line(line):
            continue
        command = clean_command("\n".join(lines[index:]))
        explanation = _trim_explanation("\n".join(lines[:index])) if explain_mode else None
        return ParsedCommand(command=command, explanation=explanation)
    return None


def parse_response(raw: str, explain_mode: bool = False) -> ParseOutcome:
    """Extract a ``ParsedCommand`` from ``raw`` or report ``NoCommandFound``.

    Priority: the first fenced code block, then a reply that is a JSON object
    with a ``command`` key, then a top-to-bottom scan for the first
    command-like line (which, together with every following line, becomes
    the command).
    """
    text = raw or ""
    parsed = _from_fence(text, explain_mode) or _from_json(text, explain_mode) or _from_lines(text, explain_mode)
    if parsed is None:
        logger.debug("no fence and no command-like line in %d chars of reply", len(text))
        return NoCommandFound(raw=text)

    first_line = parsed.command.splitlines()[0] if parsed.command else ""
    if not parsed.command or is_conversational(first_line) or PROSE_SENTENCE.match(first_line):
        logger.debug("extracted text is empty or conversational: %r", parsed.command)
        return NoCommandFound(raw=text, reason="extracted text is not a shell command")
    return parsed
