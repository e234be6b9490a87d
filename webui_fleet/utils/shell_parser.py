"""Utilities for parsing shell output captured from managed servers."""

from __future__ import annotations

import re


# ---------------------------------------------------------------------------
# Generic helpers
# ---------------------------------------------------------------------------

def first_line(output: str) -> str | None:
    """Return the first non-blank line of *output*, stripped."""
    for line in output.splitlines():
        if line.strip():
            return line.strip()
    return None


def dedupe_lines(output: str) -> str:
    """Drop repeated lines, keeping first occurrences in order.

    ``head`` and ``tail`` of a short log overlap; this collapses the overlap.
    """
    seen: set[str] = set()
    kept: list[str] = []
    for line in output.splitlines():
        line = line.rstrip()
        if not line or line in seen:
            continue
        seen.add(line)
        kept.append(line)
    return "\n".join(kept)


# ---------------------------------------------------------------------------
# Output directories / last used
# ---------------------------------------------------------------------------

_DATE_DIR_RE = re.compile(r"(?:^|/)(\d{4}-\d{2}-\d{2})/?$")
_STAT_TS_RE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}")


def parse_latest_date_dir(output: str) -> str | None:
    """Return the first ``YYYY-MM-DD`` directory path in sorted find output."""
    for line in output.splitlines():
        line_s = line.strip()
        if _DATE_DIR_RE.search(line_s):
            return line_s
    return None


def parse_last_used(stat_line: str) -> str | None:
    """Turn ``stat -c '%y %n'`` output into ``YYYY-MM-DD HH:MM <file name>``.

    The timestamp is truncated to its first 16 characters, so parsing the
    same line twice always gives the same marker.
    """
    line = first_line(stat_line)
    if line is None or not _STAT_TS_RE.match(line):
        return None
    stamp = line[:16]
    m = re.search(r"\s(/.*)$", line)
    if not m:
        return stamp
    filename = m.group(1).rstrip("/").rsplit("/", 1)[-1]
    return f"{stamp} {filename}" if filename else stamp


# ---------------------------------------------------------------------------
# Processes
# ---------------------------------------------------------------------------

_ETIME_RE = re.compile(r"^(?:(?:(\d+)-)?(\d{1,2}):)?(\d{1,2}):(\d{2})$")


def parse_pids(output: str) -> list[int]:
    """Parse ``pgrep`` output into a list of PIDs."""
    pids: list[int] = []
    for line in output.splitlines():
        token = line.strip().split(" ", 1)[0]
        if token.isdigit():
            pids.append(int(token))
    return pids


def parse_etime(output: str) -> int | None:
    """Parse ``ps -o etime=`` (``[[dd-]hh:]mm:ss``) into seconds."""
    line = first_line(output)
    if line is None:
        return None
    m = _ETIME_RE.match(line)
    if not m:
        return None
    days, hours, minutes, seconds = (int(g) if g else 0 for g in m.groups())
    return ((days * 24 + hours) * 60 + minutes) * 60 + seconds


def format_uptime(seconds: int) -> str:
    days, rem = divmod(int(seconds), 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    clock = f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{days}d {clock}" if days else clock


# ---------------------------------------------------------------------------
# wget log
# ---------------------------------------------------------------------------

# wget's completion line: "2024-05-01 12:00:00 (5.1 MB/s) - 'x' saved [123/123]"
DOWNLOAD_SUCCESS_MARKER = "saved ["

_SAVING_TO_RE = re.compile(r"Saving to:\s*['\"‘“`](.+)['\"’”`]\s*$", re.MULTILINE)
_WGET_ERROR_RE = re.compile(r"(ERROR \d{3}.*|.*failed: .*|Unable to establish .*)$")


def has_download_succeeded(log_text: str) -> bool:
    return DOWNLOAD_SUCCESS_MARKER in log_text


def parse_saved_path(log_text: str) -> str | None:
    """Extract the destination path from wget's ``Saving to: 'path'`` line."""
    m = _SAVING_TO_RE.search(log_text)
    if not m:
        return None
    return m.group(1).strip() or None


def find_download_errors(log_text: str) -> list[str]:
    errors: list[str] = []
    for line in log_text.splitlines():
        m = _WGET_ERROR_RE.search(line.strip())
        if m:
            errors.append(m.group(1).strip())
    return errors
