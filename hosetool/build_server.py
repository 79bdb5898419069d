"""Building the server project with cargo in the background and collecting its output."""

from __future__ import annotations

import shutil
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

from hosetool.server_config import ConfigError, get_config_file_path, load_server_path

CREATE_NO_WINDOW = 0x08000000
KILL_SETTLE_SECONDS = 0.5


class BuildError(Exception):
    """Raised when a build cannot be started or a build script fails."""


@dataclass
class BuildProcess:
    """State of one background build: whether it runs and the lines it has logged."""

    running: bool = True
    logs: list[str] = field(default_factory=list)
    last_read_index: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def log(self, line: str) -> None:
        """Append one line to the build log."""
        with self._lock:
            self.logs.append(line)

    def new_logs(self) -> list[str]:
        """Return the lines logged since the previous call."""
        with self._lock:
            fresh = self.logs[self.last_read_index:]
            self.last_read_index = len(self.logs)
            return fresh

    def is_running(self) -> bool:
        """Return whether the build is still marked as running."""
        with self._lock:
            return self.running

    def finish(self) -> None:
        """Mark the build as no longer running."""
        with self._lock:
            self.running = False


_state_lock = threading.Lock()
_current: BuildProcess | None = None


def _decode(data: bytes) -> str:
    if sys.platform == "win32":
        try:
            return data.decode("gbk")
        except UnicodeDecodeError:
            pass
    return data.decode("utf-8", errors="replace")


def _hidden_window() -> dict[str, Any]:
    return {"creationflags": CREATE_NO_WINDOW} if sys.platform == "win32" else {}


def _project_root() -> Path:
    config_path = get_config_file_path()
    if not config_path.exists():
        raise BuildError("configuration file not found; set the server path in the settings first")
    try:
        server_path = load_server_path()
    except ConfigError as exc:
        raise BuildError(f"cannot read configuration file: {exc}") from exc
    if server_path is None:
        raise BuildError("configuration file has no server_path")
    path = Path(server_path)
    if not server_path or path.parent == path:
        raise BuildError("cannot derive the project root from server_path")
    return path.parent


def _configured_server_path() -> str | None:
    try:
        if not get_config_file_path().exists():
            return None
        return load_server_path()
    except (ConfigError, OSError):
        return None


def _pump(pipe: IO[bytes] | None, process: BuildProcess) -> None:
    if pipe is None:
        return
    for raw in pipe:
        process.log(raw.decode("utf-8", errors="replace").rstrip("\r\n"))


def _clean(process: BuildProcess, project_root: Path) -> bool:
    process.log("[BUILD] running cargo clean...")
    try:
        result = subprocess.run(
            ["cargo", "clean"], cwd=project_root, capture_output=True, **_hidden_window()
        )
    except OSError as exc:
        process.log(f"[ERROR] failed to run cargo clean: {exc}")
        return False
    if result.returncode != 0:
        process.log(f"[ERROR] cargo clean failed: {_decode(result.stderr)}")
        return False
    process.log("[BUILD] clean finished")
    return True


def _copy_artifact(process: BuildProcess, project_root: Path, mode: str, executable_name: str) -> None:
    target_dir = "bin/target/release" if mode == "release" else "bin/target/debug"
    exe_source = project_root / target_dir / executable_name
    server_path = _configured_server_path()
    if server_path is None:
        return
    exe_dest = Path(server_path) / executable_name

    try:
        shutil.copy(exe_source, exe_dest)
        error: OSError | None = None
    except OSError as exc:
        error = exc

    if error is not None:
        process.log("[BUILD] target file may be in use, trying to stop the process holding it...")
        if sys.platform == "win32":
            try:
                subprocess.run(
                    ["taskkill", "/F", "/IM", executable_name],
                    capture_output=True,
                    **_hidden_window(),
                )
            except OSError:
                pass
            time.sleep(KILL_SETTLE_SECONDS)
        try:
            shutil.copy(exe_source, exe_dest)
            error = None
        except OSError as exc:
            error = exc

    if error is None:
        process.log(f"[BUILD] build finished successfully\n[BUILD] executable copied to: {exe_dest}")
    else:
        process.log(
            f"[BUILD] build succeeded, but copying to the server directory failed: {error}\n"
            f"[BUILD] source file: {exe_source}"
        )


def _run_build(process: BuildProcess, project_root: Path, mode: str, clean: bool, executable_name: str) -> None:
    try:
        if clean and not _clean(process, project_root):
            return
        process.log(f"[BUILD] starting build ({mode} mode)...")
        args = ["cargo", "build"]
        if mode == "release":
            args.append("--release")
        try:
            child = subprocess.Popen(
                args,
                cwd=project_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                **_hidden_window(),
            )
        except OSError as exc:
            process.log(f"[ERROR] failed to start build process: {exc}")
            return

        readers = [
            threading.Thread(target=_pump, args=(child.stdout, process), daemon=True),
            threading.Thread(target=_pump, args=(child.stderr, process), daemon=True),
        ]
        for reader in readers:
            reader.start()
        try:
            code = child.wait()
        except OSError as exc:
            process.log(f"[ERROR] failed to wait for build process: {exc}")
            return
        for reader in readers:
            reader.join()

        if code == 0:
            _copy_artifact(process, project_root, mode, executable_name)
        else:
            process.log(f"[ERROR] build failed, exit code: {code}")
    finally:
        process.finish()


def start_build_server(mode: str, clean: bool, executable_name: str) -> bool:
    """Start a cargo build of the configured project in the background."""
    global _current
    with _state_lock:
        if _current is not None and _current.is_running():
            raise BuildError("a build is already running")
        project_root = _project_root()
        process = BuildProcess()
        worker = threading.Thread(
            target=_run_build,
            args=(process, project_root, mode, clean, executable_name),
            daemon=True,
        )
        _current = process
        worker.start()
    return True


def get_build_logs() -> list[str]:
    """Return the build log lines added since the previous call."""
    with _state_lock:
        process = _current
    return process.new_logs() if process is not None else []


def is_build_running() -> bool:
    """Return whether a background build is running."""
    with _state_lock:
        process = _current
    return process is not None and process.is_running()


def stop_build() -> bool:
    """Mark the current build as stopped by the user."""
    with _state_lock:
        process = _current
    if process is not None:
        process.finish()
        process.log("[BUILD] build stopped by the user")
    return True


def execute_build(build_path: str, server_path: str) -> str:
    """Run a build script in the server directory and return its output."""
    if not Path(build_path).exists():
        raise BuildError(f"build file not found: {build_path}")
    try:
        result = subprocess.run(
            ["cmd", "/C", build_path],
            cwd=server_path,
            capture_output=True,
            **_hidden_window(),
        )
    except OSError as exc:
        raise BuildError(f"failed to run build command: {exc}") from exc
    stdout = _decode(result.stdout)
    stderr = _decode(result.stderr)
    if result.returncode != 0:
        raise BuildError(f"build failed:\n{stdout}\n{stderr}")
    return f"{stdout}\n{stderr}"


def check_build_script(server_path: str) -> bool:
    """Return whether the server directory holds a build.cmd script."""
    return (Path(server_path) / "build.cmd").exists()