from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple


class MatchMode(str, enum.Enum):
    """How catalogue entries are matched against each segment.

    PREFIX only flags a segment that *starts* with a destructive command, so
    ``echo 'shutdown -h now'`` stays safe but ``nice shutdown now`` slips
    through. SUBSTRING flags the entry anywhere in the segment and trades those
    false negatives for false positives on quoted text.
    """

    PREFIX = "prefix"
    SUBSTRING = "substring"


@dataclass(frozen=True)
class DangerVerdict:
    dangerous: bool
    matched_pattern: Optional[str] = None
    segment: Optional[str] = None
    reason: Optional[str] = None


_ANY_FLAGS = r"(?:-\S+\s+)*"
_ANY_ARGS = r"(?:\S+\s+)*"
_END = r"(?:\s|$)"
_BLOCK_DEVICE = r"/dev/(?:sd|hd|vd|xvd|nvme|mmcblk|disk)"

# (name, regex, label). Regexes run against one lowercased segment; PREFIX mode
# anchors them at the segment start, SUBSTRING mode searches anywhere.
DANGER_CATALOGUE: List[Tuple[str, str, str]] = [
    # filesystem wipes
    ("rm -rf /", rf"rm\s+{_ANY_FLAGS}/\*?{_END}", "Recursive delete from root"),
    ("rm -rf ~", rf"rm\s+{_ANY_FLAGS}(?:~|\$home)/?\*?{_END}", "Recursive delete of home directory"),
    ("rm -rf *", rf"rm\s+{_ANY_FLAGS}-(?:\w*r\w*|-recursive)\s+{_ANY_FLAGS}\*{_END}", "Wildcard recursive delete"),
    ("rm -rf .*", rf"rm\s+{_ANY_FLAGS}-(?:\w*r\w*|-recursive)\s+{_ANY_FLAGS}\.\*{_END}", "Recursive delete of dotfiles"),
    ("rm --no-preserve-root", r"rm\s+.*--no-preserve-root", "Delete with root protection disabled"),
    # device overwrites
    ("dd", r"dd\s+(?:\S+\s+)*?(?:if|of)=", "Raw block copy with dd"),
    ("> /dev/sd*", rf".*?>\s*{_BLOCK_DEVICE}", "Redirect onto a block device"),
    ("cat /dev/urandom >", r"cat\s+/dev/(?:u?random|zero)\s*>", "Overwrite with random data"),
    ("> /etc/", r".*?>\s*/(?:etc|boot|bin|sbin|usr)/", "Redirection into system path"),
    # filesystem creation
    ("mkfs", r"mkfs(?:\.\w+)?\b", "Filesystem creation (mkfs)"),
    ("mke2fs", r"mke2fs\b", "Filesystem creation (mke2fs)"),
    # privilege and ownership changes
    ("chmod 000", rf"chmod\s+{_ANY_FLAGS}0{{3,4}}{_END}", "Remove all permissions"),
    ("chmod /", rf"chmod\s+{_ANY_ARGS}/\*?{_END}", "Permission change at root"),
    ("chown /", rf"chown\s+{_ANY_ARGS}/\*?{_END}", "Ownership change at root"),
    ("chown root", rf"chown\s+{_ANY_FLAGS}root\b", "Ownership change to root"),
    # power state
    ("shutdown", r"(?:shutdown|reboot|halt|poweroff)\b", "System power action"),
    ("init 0", rf"(?:init|telinit)\s+[06]{_END}", "Runlevel power action"),
    ("systemctl poweroff", r"systemctl\s+(?:poweroff|reboot|halt|kexec)\b", "System power action"),
    ("kill -9 1", rf"kill\s+-(?:9|kill|sigkill)\s+-?1{_END}", "SIGKILL init or every process"),
    # mass moves and deletions
    ("mv /", rf"mv\s+{_ANY_FLAGS}/\*?\s", "Move the root filesystem"),
    ("crontab -r", r"crontab\s+(?:-\S+\s+)*?-\w*r\b", "Remove all cron jobs"),
    ("find / -delete", r"find\s+/\s.*-delete\b", "Mass delete from root"),
    ("find / -exec rm", r"find\s+/\s.*-exec\s+rm\b", "Mass delete from root"),
    # secure erase
    ("shred", r"shred\b", "Secure erase"),
    ("wipefs", r"wipefs\b", "Filesystem signature wipe"),
    ("blkdiscard", r"blkdiscard\b", "Block device discard"),
]

# Matched against the whole normalized command.
PIPE_TO_SHELL: List[Tuple[str, str, str]] = [
    (
        "curl | sh",
        r"\b(?:curl|wget|fetch)\b[^;]*\|\s*(?:sudo\s+)?(?:\w*sh|python[\d.]*|perl|ruby|node|php)\b",
        "Pipe remote script to interpreter",
    ),
    ("| sh", r"\|\s*(?:sudo\s+)?(?:ba|z|k|da)?sh\s*(?:-s\s*)?(?:$|[;&|)])", "Pipe into a shell"),
    (
        "sh <(curl)",
        r"(?:\w*sh|source|\.)\s+<\s*\(\s*(?:curl|wget|fetch)\b",
        "Execute remote script via process substitution",
    ),
]

FORK_BOMB = re.compile(r"([\w:.]+)\(\)\{\1\|\1&\};\1")

_SEPARATORS = re.compile(r";|&&|\|\||[(){}]")
_PRIVILEGE_WRAPPER = re.compile(r"^(?:(?:sudo|doas)(?:\s+-\S+)*\s+)+")

_COMPILED: List[Tuple[str, Pattern[str], str]] = [
    (name, re.compile(pattern), label) for name, pattern, label in DANGER_CATALOGUE
]
_COMPILED_PIPES: List[Tuple[str, Pattern[str], str]] = [
    (name, re.compile(pattern), label) for name, pattern, label in PIPE_TO_SHELL
]


def normalize(command: str) -> str:
    text = command.lower().replace("\r\n", "\n").replace("\r", "\n")
    text = text.replace("\n", ";")
    return re.sub(r"\s+", " ", text).strip()


def segments(normalized: str) -> List[str]:
    """Split a normalized command into sub-statements, dropping empty ones."""
    parts = (part.strip() for part in _SEPARATORS.split(normalized))
    return [part for part in parts if part]


def _match_segment(segment: str, mode: MatchMode) -> Optional[Tuple[str, str]]:
    # sudo/doas only escalate the command that follows them
    target = _PRIVILEGE_WRAPPER.sub("", segment)
    for name, pattern, label in _COMPILED:
        if mode is MatchMode.PREFIX:
            hit = pattern.match(target)
        else:
            hit = pattern.search(segment)
        if hit:
            return name, label
    return None


def classify(command: str, mode: MatchMode = MatchMode.PREFIX) -> DangerVerdict:
    """Decide whether ``command`` is too destructive to offer for auto-run.

    Pure and total: the same string always yields the same verdict and no input
    string raises.
    """
    mode = MatchMode(mode)
    normalized = normalize(command)
    if not normalized:
        return DangerVerdict(dangerous=False)

    if FORK_BOMB.search(normalized.replace(" ", "")):
        return DangerVerdict(True, ":(){ :|:& };:", normalized, "Fork bomb")

    for segment in segments(normalized):
        hit = _match_segment(segment, mode)
        if hit:
            name, label = hit
            return DangerVerdict(True, name, segment, label)

    for name, pattern, label in _COMPILED_PIPES:
        if pattern.search(normalized):
            return DangerVerdict(True, name, normalized, label)

    return DangerVerdict(dangerous=False)
