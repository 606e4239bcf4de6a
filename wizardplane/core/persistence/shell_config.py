"""
Shell config store — line-oriented edits of shell startup files.

Two layers:

1. **Pure text transforms** (``find_export``, ``upsert_exports``,
   ``strip_exports``).  A file is split into lines, export lines for a
   key are located and replaced in place, new keys go inside one
   marker block, and the lines are joined back.  Nothing else in the
   file changes::

       # >>> wizardplane environment >>>
       export ANTHROPIC_BASE_URL="https://api.example.com"
       # <<< wizardplane environment <<<

2. **File I/O** (``ShellConfigStore``).  Reads treat a missing file as
   empty.  Writes are atomic (temp file in the same directory, then
   rename), keep the file mode, and go through symlinks to the real
   file.  Writers to one path are serialized by an in-process lock;
   other processes editing the same file are not coordinated with.

Files are decoded as UTF-8 with ``surrogateescape``: bytes that are
not valid UTF-8 (a latin-1 comment, say) survive a read-edit-write
unchanged.  Lines ending in CRLF keep it, and lines added to a mostly
CRLF file get it too.
"""

from __future__ import annotations

import logging
import os
import re
import stat
import tempfile
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MARKER_LABEL = "wizardplane environment"

# Read order for lookups and removals.
DEFAULT_CANDIDATES: tuple[str, ...] = (".zshrc", ".bashrc", ".bash_profile", ".profile")

_DQ_ESCAPES = ("\\", '"', "$", "`")

ENCODING = "utf-8"
ERRORS = "surrogateescape"


def marker_lines(label: str = DEFAULT_MARKER_LABEL) -> tuple[str, str]:
    """Begin/end comment lines of the managed block."""
    return f"# >>> {label} >>>", f"# <<< {label} <<<"


def _export_re(key: str) -> re.Pattern[str]:
    return re.compile(rf"^(?P<indent>\s*)export\s+{re.escape(key)}=(?P<value>.*?)(?P<cr>\r?)$")


def quote_value(value: str) -> str:
    """Double-quote ``value`` for a POSIX shell, escaping \\ " $ `."""
    escaped = "".join("\\" + ch if ch in _DQ_ESCAPES else ch for ch in value)
    return f'"{escaped}"'


def export_line(key: str, value: str) -> str:
    return f"export {key}={quote_value(value)}"


def parse_value(raw: str) -> str:
    """Decode the right-hand side of ``export KEY=<raw>``.

    Handles double-quoted (with backslash escapes), single-quoted and
    bare values.  A trailing ``# comment`` after a bare value is dropped.
    """
    raw = raw.strip()
    if raw.startswith('"'):
        out: list[str] = []
        i = 1
        while i < len(raw):
            ch = raw[i]
            if ch == "\\" and i + 1 < len(raw) and raw[i + 1] in _DQ_ESCAPES:
                out.append(raw[i + 1])
                i += 2
                continue
            if ch == '"':
                break
            out.append(ch)
            i += 1
        return "".join(out)
    if raw.startswith("'"):
        end = raw.find("'", 1)
        return raw[1:end] if end != -1 else raw[1:]
    # bare word: stop at whitespace (a comment must be preceded by one)
    return raw.split(None, 1)[0] if raw else ""


def _split(text: str) -> tuple[list[str], bool]:
    if not text:
        return [], False
    trailing = text.endswith("\n")
    lines = text.split("\n")
    if trailing:
        lines.pop()
    return lines, trailing


def _join(lines: list[str], trailing: bool) -> str:
    if not lines:
        return ""
    return "\n".join(lines) + ("\n" if trailing else "")


def _bare(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


def _line_end(lines: list[str]) -> str:
    """``"\\r"`` when most lines are CRLF-terminated, else ``""``."""
    crlf = sum(1 for line in lines if line.endswith("\r"))
    return "\r" if lines and crlf * 2 > len(lines) else ""


# ── Transforms ──────────────────────────────────────────────────


def find_export(text: str, key: str) -> str | None:
    """Value of the first ``export KEY=`` line in ``text``, or None."""
    pattern = _export_re(key)
    for line in _split(text)[0]:
        m = pattern.match(line)
        if m:
            return parse_value(m.group("value"))
    return None


@dataclass
class PatchResult:
    text: str
    updated: list[str] = field(default_factory=list)
    appended: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)


def upsert_exports(
    text: str,
    variables: Mapping[str, str],
    label: str = DEFAULT_MARKER_LABEL,
) -> PatchResult:
    """Set each variable: replace existing export lines, else append in the block.

    Every existing export line of a key is rewritten in place (keeping
    its indentation), so the result has the same line count for known
    keys.  Applying the same variables twice yields identical text.
    """
    lines, trailing = _split(text)
    result = PatchResult(text="")
    missing: list[str] = []

    for key, value in variables.items():
        pattern = _export_re(key)
        new = export_line(key, value)
        hit = False
        for i, line in enumerate(lines):
            m = pattern.match(line)
            if m:
                lines[i] = f"{m.group('indent')}{new}{m.group('cr')}"
                hit = True
        if hit:
            result.updated.append(key)
        else:
            missing.append(key)

    if missing:
        begin, end = marker_lines(label)
        cr = _line_end(lines)
        new_lines = [export_line(k, variables[k]) + cr for k in missing]
        bare = [_bare(line) for line in lines]
        if begin in bare and end in bare[bare.index(begin):]:
            at = bare.index(end, bare.index(begin))
            lines[at:at] = new_lines
        else:
            if lines and lines[-1].strip():
                lines.append(cr)
            lines.extend([begin + cr, *new_lines, end + cr])
        trailing = True
        result.appended = missing

    result.text = _join(lines, trailing)
    return result


def strip_exports(
    text: str,
    keys: Iterable[str],
    label: str = DEFAULT_MARKER_LABEL,
) -> PatchResult:
    """Delete every export line of ``keys``; drop the marker block if it empties."""
    lines, trailing = _split(text)
    patterns = {key: _export_re(key) for key in keys}
    removed: set[str] = set()
    kept: list[str] = []

    for line in lines:
        hit = next((k for k, p in patterns.items() if p.match(line)), None)
        if hit is None:
            kept.append(line)
        else:
            removed.add(hit)

    begin, end = marker_lines(label)
    for i in range(len(kept) - 1):
        if _bare(kept[i]) == begin and _bare(kept[i + 1]) == end:
            del kept[i:i + 2]
            break

    return PatchResult(
        text=_join(kept, trailing),
        removed=[k for k in patterns if k in removed],
    )


# ── File I/O ────────────────────────────────────────────────────


class ShellConfigStore:
    """Reads and writes the shell startup files under one home directory."""

    def __init__(
        self,
        home: Path,
        candidates: Sequence[str] = DEFAULT_CANDIDATES,
        *,
        marker_label: str = DEFAULT_MARKER_LABEL,
    ) -> None:
        self.home = home
        self.candidates: tuple[str, ...] = tuple(candidates)
        self.marker_label = marker_label
        self._locks: dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def path(self, name: str) -> Path:
        return self.home / name

    def candidate_paths(self) -> list[Path]:
        return [self.path(name) for name in self.candidates]

    def existing(self) -> list[Path]:
        """Candidate files that exist, in candidate order."""
        return [p for p in self.candidate_paths() if p.is_file()]

    def read(self, path: Path) -> str:
        """File contents, or ``""`` when the file does not exist."""
        try:
            return path.read_text(encoding=ENCODING, errors=ERRORS)
        except FileNotFoundError:
            return ""

    def _lock_for(self, path: Path) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(path)
            if lock is None:
                lock = self._locks[path] = threading.Lock()
            return lock

    def mutate(self, path: Path, transform: Callable[[str], str]) -> bool:
        """Read-transform-write ``path`` under its lock.

        Returns whether the file changed.  Unchanged content is not
        rewritten (and a missing file that stays empty is not created).
        OSError from reading or writing propagates.
        """
        real = path.resolve()
        with self._lock_for(real):
            before = self.read(real)
            after = transform(before)
            if after == before:
                return False
            write_atomic(real, after)
            logger.debug("Wrote %s (%d → %d bytes)", real, len(before), len(after))
            return True


def write_atomic(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` via temp file + rename.

    The new file keeps the old file's permission bits (0644 for a new
    file).  The temp file is removed if anything fails.
    """
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        mode = 0o644

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=ENCODING, errors=ERRORS, newline="") as f:
            f.write(content)
        os.chmod(tmp, mode)
        tmp.replace(path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
