"""Forcibly stopping every running server process."""

from __future__ import annotations

import subprocess
import sys

CREATE_NO_WINDOW = 0x08000000


class KillError(Exception):
    """Raised when server processes could not be killed."""


def _decode(data: bytes) -> str:
    if sys.platform == "win32":
        try:
            return data.decode("gbk")
        except UnicodeDecodeError:
            pass
    return data.decode("utf-8", errors="replace")


def _kill_windows(executable_name: str) -> str:
    try:
        result = subprocess.run(
            ["taskkill", "/F", "/IM", executable_name],
            capture_output=True,
            creationflags=CREATE_NO_WINDOW,
        )
    except OSError as exc:
        raise KillError(f"failed to run taskkill: {exc}") from exc
    stdout = _decode(result.stdout)
    stderr = _decode(result.stderr)
    if result.returncode == 0:
        return f"Killed all {executable_name} processes\n{stdout}"
    if "not found" in stderr or "未找到" in stderr:
        return f"No running {executable_name} process found"
    raise KillError(f"failed to kill processes: {stderr}")


def _kill_posix(executable_name: str) -> str:
    process_name = executable_name
    while process_name.endswith(".exe"):
        process_name = process_name[: -len(".exe")]
    try:
        result = subprocess.run(["pkill", "-f", process_name], capture_output=True)
    except OSError as exc:
        raise KillError(f"failed to run pkill: {exc}") from exc
    if result.returncode == 0:
        return f"Killed all {process_name} processes"
    if result.returncode == 1:
        return f"No running {process_name} process found"
    raise KillError(f"failed to kill processes: {_decode(result.stderr)}")


def kill_all_servers(executable_name: str) -> str:
    """Kill every process running the given server executable and describe the outcome."""
    if sys.platform == "win32":
        return _kill_windows(executable_name)
    return _kill_posix(executable_name)