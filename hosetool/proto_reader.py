"""Reading .proto files from a directory tree."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path


class ProtoReadError(Exception):
    """Raised when proto files cannot be found or read."""


@dataclass
class ProtoFileInfo:
    """A proto file's name, text and location."""

    file_name: str
    content: str
    path: str


def _parent(path: Path) -> Path | None:
    parent = path.parent
    return None if parent == path else parent


def _candidate_dirs(cwd: Path, proto_path: str) -> Iterator[Path]:
    yield cwd / proto_path
    parent = _parent(cwd)
    grandparent = _parent(parent) if parent is not None else None
    if grandparent is not None:
        yield grandparent / proto_path
    if parent is not None:
        yield parent / proto_path
    yield Path("../..") / proto_path


def _read(path: Path, shown_path: str) -> ProtoFileInfo:
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ProtoReadError(f"cannot read file {path}: {exc}") from exc
    return ProtoFileInfo(file_name=path.name, content=content, path=shown_path)


def _walk(directory: Path) -> Iterator[ProtoFileInfo]:
    try:
        entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
    except OSError as exc:
        raise ProtoReadError(f"cannot read directory {directory}: {exc}") from exc
    for entry in entries:
        if entry.is_dir():
            yield from _walk(entry)
        elif entry.suffix == ".proto":
            yield _read(entry, str(entry))


def read_proto_files(proto_path: str) -> list[ProtoFileInfo]:
    """Read every .proto file below a directory, searching parent directories if needed."""
    path = Path(proto_path)
    if path.exists():
        final = path
    else:
        try:
            cwd = Path.cwd()
        except OSError as exc:
            raise ProtoReadError(f"cannot get working directory: {exc}") from exc
        found = next((c for c in _candidate_dirs(cwd, proto_path) if c.is_dir()), None)
        if found is None:
            raise ProtoReadError(f"proto directory not found: {proto_path} (working directory: {cwd})")
        final = found
    if not final.is_dir():
        raise ProtoReadError(f"not a directory: {proto_path}")
    return list(_walk(final))


def read_proto_file(file_path: str) -> ProtoFileInfo:
    """Read one proto file."""
    path = Path(file_path)
    if not path.exists():
        raise ProtoReadError(f"file not found: {file_path}")
    if not path.is_file():
        raise ProtoReadError(f"not a file: {file_path}")
    return _read(path, file_path)