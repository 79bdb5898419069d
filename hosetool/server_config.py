"""Server layout parsing and the tool's persistent JSON settings."""

from __future__ import annotations

import json
import logging
import os
import re
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)

CONFIG_FILE_NAME = "app_config.json"
DEFAULT_SERVER_CONFIG = "config.xml"
HOME_ENV = "HOSETOOL_HOME"

_PORT_RE = re.compile(r"\+?[0-9]+")
_MAX_PORT = 65535


class ConfigError(Exception):
    """Raised when a configuration file cannot be read, parsed or written."""


@dataclass
class ServerInfo:
    """One server entry of a server group."""

    id: str = ""
    name: str | None = None
    back_tcp_port: int | None = None
    front_tcp_port: int | None = None
    front_ws_port: int | None = None
    kind: str | None = "server"

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready mapping, leaving out unset fields."""
        data: dict[str, Any] = {"id": self.id}
        optional = (
            ("name", self.name),
            ("back_tcp_port", self.back_tcp_port),
            ("front_tcp_port", self.front_tcp_port),
            ("front_ws_port", self.front_ws_port),
            ("type", self.kind),
        )
        data.update((key, value) for key, value in optional if value is not None)
        return data


@dataclass
class ServerGroup:
    """A named group of servers."""

    id: str = ""
    name: str = ""
    kind: str = "group"
    children: list[ServerInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready mapping."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.kind,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class ServerList:
    """All server groups found in a server configuration file."""

    servers: list[ServerGroup] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready mapping."""
        return {"servers": [group.to_dict() for group in self.servers]}


def _parse_port(text: str) -> int:
    if not _PORT_RE.fullmatch(text) or int(text) > _MAX_PORT:
        raise ConfigError(f"invalid port value: {text!r}")
    return int(text)


def _server_from_attrs(attrs: dict[str, str]) -> ServerInfo:
    server = ServerInfo()
    for key, value in attrs.items():
        if key == "id":
            server.id = value
        elif key == "name":
            server.name = value
        elif key == "back_tcp_port":
            server.back_tcp_port = _parse_port(value)
        elif key == "front_tcp_port":
            server.front_tcp_port = _parse_port(value)
        elif key == "front_ws_port":
            server.front_ws_port = _parse_port(value)
    return server


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc


def parse_server_config(path: str | os.PathLike[str], config_file_name: str | None = None) -> ServerList:
    """Parse the ``<servers>`` section of a server XML configuration file."""
    name = DEFAULT_SERVER_CONFIG if config_file_name is None else config_file_name
    config_path = Path(path) / name
    log.info("looking for server configuration at %s", config_path)
    if not config_path.exists():
        raise ConfigError(f"configuration file not found: {config_path}")

    content = _read_text(config_path)
    parser = ET.XMLPullParser(events=("start", "end"))
    try:
        if content.strip():
            parser.feed(content)
            parser.close()
    except ET.ParseError as exc:
        raise ConfigError(f"XML parse error: {exc}") from exc

    groups: list[ServerGroup] = []
    group: ServerGroup | None = None
    server: ServerInfo | None = None
    in_servers = False
    in_group = False

    for event, elem in parser.read_events():
        tag = elem.tag
        if event == "start":
            if tag == "servers":
                in_servers = True
            elif tag == "group" and in_servers:
                in_group = True
                group_name = elem.attrib.get("name", "")
                group = ServerGroup(id=group_name, name=group_name)
            elif tag == "server" and in_servers and in_group:
                server = _server_from_attrs(dict(elem.attrib))
        else:
            if tag == "server" and in_servers and in_group:
                if server is not None and group is not None:
                    group.children.append(server)
                server = None
            elif tag == "group" and in_servers:
                in_group = False
                if group is not None:
                    groups.append(group)
                group = None
            elif tag == "servers":
                in_servers = False

    log.info("parsed %d server groups", len(groups))
    return ServerList(servers=groups)


def get_config_file_path() -> Path:
    """Return the path of the tool's JSON settings file.

    The file lives in the directory named by ``HOSETOOL_HOME`` if set,
    otherwise next to the running program.
    """
    home = os.environ.get(HOME_ENV)
    if home:
        return Path(home) / CONFIG_FILE_NAME
    program = sys.argv[0] if sys.argv and sys.argv[0] else ""
    base = Path(program).resolve().parent if program else Path.cwd()
    return base / CONFIG_FILE_NAME


def _load_for_update(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    text = _read_text(path)
    try:
        data = json.loads(text)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _load_strict(path: Path) -> Any:
    text = _read_text(path)
    try:
        return json.loads(text)
    except ValueError as exc:
        raise ConfigError(f"malformed configuration file {path}: {exc}") from exc


def _write(path: Path, text: str) -> None:
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot save configuration file {path}: {exc}") from exc


def _compact(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"), sort_keys=True)


def _pretty(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True)


def _index(value: Any, key: str) -> Any:
    return value.get(key) if isinstance(value, dict) else None


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def save_server_path(path: str) -> None:
    """Store the server directory in the settings file."""
    config_path = get_config_file_path()
    config = _load_for_update(config_path)
    config["server_path"] = path
    _write(config_path, _compact(config))


def save_startup_config(config_file_name: str, executable_name: str, proto_path: str | None = None) -> None:
    """Store the startup parameters, and the proto directory if given."""
    config_path = get_config_file_path()
    config = _load_for_update(config_path)
    config["config_file_name"] = config_file_name
    config["executable_name"] = executable_name
    if proto_path is not None:
        config["proto_path"] = proto_path
    _write(config_path, _compact(config))


def load_server_path() -> str | None:
    """Return the stored server directory, or None if there is none."""
    config_path = get_config_file_path()
    if not config_path.exists():
        return None
    return _str_or_none(_index(_load_strict(config_path), "server_path"))


def load_startup_config() -> tuple[str | None, str | None, str | None]:
    """Return (config_file_name, executable_name, proto_path) from the settings."""
    config_path = get_config_file_path()
    if not config_path.exists():
        return None, None, None
    config = _load_strict(config_path)
    return (
        _str_or_none(_index(config, "config_file_name")),
        _str_or_none(_index(config, "executable_name")),
        _str_or_none(_index(config, "proto_path")),
    )


def get_app_config() -> Any:
    """Return the whole settings document, or an empty mapping if absent."""
    config_path = get_config_file_path()
    if not config_path.exists():
        return {}
    return _load_strict(config_path)


def save_message_templates(server_type: str, templates: Any) -> None:
    """Store the message templates of one server type."""
    config_path = get_config_file_path()
    config = _load_for_update(config_path)
    if not isinstance(config.get("msg_template"), dict):
        config["msg_template"] = {}
    config["msg_template"][server_type] = templates
    _write(config_path, _pretty(config))


def load_message_templates(server_type: str) -> Any:
    """Return the message templates of one server type, or an empty list."""
    config_path = get_config_file_path()
    if not config_path.exists():
        return []
    config = _load_strict(config_path)
    templates = _index(_index(config, "msg_template"), server_type)
    return [] if templates is None else templates