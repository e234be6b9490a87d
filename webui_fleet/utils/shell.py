"""Builders for the shell commands run on managed servers.

Every interpolated value goes through :func:`quote_path` or ``shlex.quote``.
"""

from __future__ import annotations

import shlex
from typing import Optional
from urllib.parse import quote

OUTPUT_SUBDIRS = ("txt2img-images", "img2img-images")
WEBUI_LOG = "webui.log"
DOWNLOAD_LOG = "wget.log"
WGET_TRIES = 3
WGET_TIMEOUT_SECONDS = 60


def quote_path(path: str) -> str:
    """Shell-quote *path* while keeping a leading ``~`` expandable."""
    if path == "~":
        return "~"
    if path.startswith("~/"):
        rest = path[2:]
        return "~/" + shlex.quote(rest) if rest else "~/"
    return shlex.quote(path)


def join_path(base: str, *parts: str) -> str:
    return "/".join([base.rstrip("/"), *(p.strip("/") for p in parts)])


def pgrep_pattern(fingerprint: str) -> str:
    """Regex for ``pgrep -f`` that never matches the invoking shell itself.

    ``launch.py`` becomes ``[l]aunch\\.py``: the shell running pgrep has the
    bracketed text on its command line, which the regex does not match.
    """
    if not fingerprint:
        raise ValueError("fingerprint must not be empty")
    escaped = [_escape_char(c) for c in fingerprint]
    if fingerprint[0].isalnum():
        escaped[0] = f"[{fingerprint[0]}]"
    return "".join(escaped)


def _escape_char(char: str) -> str:
    return "\\" + char if char in ".^$*+?()[]{}|\\" else char


# ── status probe ──────────────────────────────────────────────────────────


def latest_date_dir_command(base_path: str, subdir: str) -> str:
    outputs = quote_path(join_path(base_path, "outputs", subdir))
    return (
        f"find {outputs} -mindepth 1 -maxdepth 1 -type d -name '????-??-??' "
        "2>/dev/null | sort -r | head -n 1"
    )


def newest_file_command(directories: list[str]) -> str:
    dirs = " ".join(shlex.quote(d) for d in directories)
    return (
        f"find {dirs} -type f -exec stat -c '%y %n' {{}} + 2>/dev/null "
        "| sort -r | head -n 1"
    )


def pgrep_command(fingerprint: str) -> str:
    return f"pgrep -f {shlex.quote(pgrep_pattern(fingerprint))}"


def etime_command(pid: int) -> str:
    return f"ps -o etime= -p {int(pid)}"


# ── restart ───────────────────────────────────────────────────────────────


def kill_command(pids: list[int]) -> str:
    return "kill " + " ".join(str(int(p)) for p in pids)


def launch_command(base_path: str, command: str) -> str:
    """Start *command* detached so it outlives the SSH session.

    Only the nohup group is backgrounded, so a failing ``cd`` shows up in the
    exit status. *command* is configuration-supplied shell text and is not
    quoted.
    """
    return (
        f"cd {quote_path(base_path)} && "
        f"{{ nohup {command} > {WEBUI_LOG} 2>&1 < /dev/null & }}"
    )


# ── downloads ─────────────────────────────────────────────────────────────


def proxy_url(user: str, password: str, host: str, port: int) -> str:
    credentials = f"{quote(user, safe='')}:{quote(password, safe='')}@" if password else ""
    return f"http://{credentials}{host}:{port}"


def start_download_command(
    download_dir: str,
    url: str,
    proxy: str,
    output_name: Optional[str] = None,
) -> str:
    """Export proxy variables and launch a logged background wget.

    The previous log is removed first so polling never reads an older run.
    """
    proxy_q = shlex.quote(proxy)
    dl_dir = quote_path(download_dir)
    output = f"-O {shlex.quote(output_name)} " if output_name else ""
    return (
        f"export http_proxy={proxy_q} https_proxy={proxy_q} "
        f"HTTP_PROXY={proxy_q} HTTPS_PROXY={proxy_q} && "
        f"mkdir -p {dl_dir} && cd {dl_dir} && rm -f {DOWNLOAD_LOG} && "
        f"{{ nohup wget --tries={WGET_TRIES} --timeout={WGET_TIMEOUT_SECONDS} "
        f"--progress=dot:giga {output}{shlex.quote(url)} "
        f"> {DOWNLOAD_LOG} 2>&1 < /dev/null & }}"
    )


def log_window_command(download_dir: str, lines: int) -> str:
    log_file = quote_path(join_path(download_dir, DOWNLOAD_LOG))
    n = int(lines)
    return f"head -n {n} {log_file} 2>/dev/null; tail -n {n} {log_file} 2>/dev/null"


def move_command(download_dir: str, saved_path: str, destination: str) -> str:
    """Move the downloaded file into *destination* and list the result."""
    dest = quote_path(destination)
    name = shlex.quote(saved_path.rstrip("/").rsplit("/", 1)[-1])
    return (
        f"cd {quote_path(download_dir)} && mkdir -p {dest} && "
        f"mv -f -- {shlex.quote(saved_path)} {dest}/ && ls -lh {dest}/{name}"
    )
