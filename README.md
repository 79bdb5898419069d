# hosetool

A small library for working with a cluster of game servers during
development. It reads the cluster layout from the servers' XML
configuration, keeps a JSON settings file, runs `cargo` builds in the
background and collects their output, kills running server processes, and
provides asyncio TCP and WebSocket clients that speak the servers' framed
binary protocol.

The package is a library only; it installs no command.

## Modules

### `hosetool.server_config`

`parse_server_config(path, config_file_name=None)` reads
`<path>/<config_file_name>` (default `config.xml`) and returns a
`ServerList`. Only `<group>` elements inside `<servers>` and `<server>`
elements inside such a group are taken: a `ServerGroup` gets its `id` and
`name` from the group's `name` attribute, and each `ServerInfo` reads the
`id`, `name`, `back_tcp_port`, `front_tcp_port` and `front_ws_port`
attributes. A port that is not a whole number from 0 to 65535, a missing
file or malformed XML raises `ConfigError`. Every class has `to_dict()`,
which gives a JSON-ready mapping (the `kind` field appears as `"type"`,
and unset optional server fields are left out).

The settings file is `app_config.json`. `get_config_file_path()` places it
in the directory named by the `HOSETOOL_HOME` environment variable, or
else next to the running program. It is read and written with:

- `save_server_path(path)` / `load_server_path()`
- `save_startup_config(config_file_name, executable_name, proto_path=None)` /
  `load_startup_config()`, which returns
  `(config_file_name, executable_name, proto_path)`
- `save_message_templates(server_type, templates)` /
  `load_message_templates(server_type)`, which returns `[]` when there are none
- `get_app_config()`, the whole document, `{}` when the file is absent

The save functions keep the other keys already in the file. The load
functions return `None` (or empty values) when the file does not exist and
raise `ConfigError` when it is not valid JSON.

### `hosetool.proto_reader`

`read_proto_files(proto_path)` returns a `ProtoFileInfo` (`file_name`,
`content`, `path`) for every `.proto` file below a directory, searching
subdirectories in name order. If `proto_path` does not exist as given, it
is also looked for relative to the working directory, its grandparent, its
parent and `../..`. `read_proto_file(file_path)` reads a single file.
Failures raise `ProtoReadError`.

### `hosetool.build_server`

`start_build_server(mode, clean, executable_name)` starts a background
build of the project whose root is the parent directory of the configured
`server_path`. It runs `cargo clean` first when `clean` is true, then
`cargo build` (with `--release` when `mode == "release"`), and on success
copies `bin/target/release/<executable_name>` or
`bin/target/debug/<executable_name>` into the server directory. On
Windows, when that copy fails, it stops running instances of the
executable and tries once more. Only one build runs at a time; a second
start raises `BuildError`, as does a missing settings file or
`server_path`.

While it runs:

- `get_build_logs()` returns the output lines added since the last call
- `is_build_running()` tells whether the build is still marked as running
- `stop_build()` marks the build as stopped and logs that the user stopped
  it; the `cargo` process itself is left to finish

`execute_build(build_path, server_path)` runs a build script through
`cmd /C` in the server directory and returns its output, raising
`BuildError` when the script is missing or fails.
`check_build_script(server_path)` tells whether `build.cmd` exists there.

### `hosetool.misc`

`kill_all_servers(executable_name)` kills every running instance of the
server executable (`taskkill /F /IM` on Windows, `pkill -f` with any
`.exe` suffix removed elsewhere) and returns a message saying what
happened. Finding no process is not an error; other failures raise
`KillError`.

### `hosetool.tcp_client`

Every message is a frame: a 2-byte big-endian message id, a 2-byte
big-endian payload length, then the payload. `extract_frames(buffer)`
removes each complete frame from the front of a `bytearray` and returns
them with their headers, leaving any incomplete rest in place:

```python
from hosetool.tcp_client import extract_frames

buf = bytearray(b"\x00\x03\x00\x02\x08\x01\x00\x04\x00")
assert extract_frames(buf) == [b"\x00\x03\x00\x02\x08\x01"]
assert buf == bytearray(b"\x00\x04\x00")
```

`TcpClient(id, TcpClientConfig(host, port, auto_reconnect=False,
reconnect_interval=5))` connects with `await connect()` (10 second
timeout), sends already framed bytes with `await send(data)` and closes
with `await disconnect()`. `set_receive_callback(callback)` sets the
function that gets each complete frame; `set_disconnect_callback(callback)`
sets the one called when the connection drops. `get_status()` returns a
`ClientStatus` (`DISCONNECTED`, `CONNECTING`, `CONNECTED`, `ERROR`).
Connection and send failures raise `ClientError`.

### `hosetool.websocket_client`

`WebSocketClient(id, WebSocketClientConfig(host, port, auto_reconnect=False,
reconnect_interval=5))` connects to `ws://host:port`. Binary and text
messages both reach the receive callback as bytes. It has `connect()`,
`disconnect()`, `send(data)` for binary messages, `send_text(text)`,
`set_receive_callback`, `set_disconnect_callback` and `get_status`, and
uses the same `ClientStatus` and `ClientError` as the TCP client.

```python
import asyncio
from hosetool.tcp_client import TcpClient, TcpClientConfig

async def main():
    client = TcpClient("1", TcpClientConfig("127.0.0.1", 9001))
    client.set_receive_callback(lambda frame: print("received", frame))
    await client.connect()
    await client.send(b"\x00\x01\x00\x00")
    await asyncio.sleep(1)
    await client.disconnect()

asyncio.run(main())
```

## What it does not do

- It does not start, stop or watch server processes, and does not capture
  their output; only `kill_all_servers` acts on running servers.
- It has no registry of several clients, no message log kept across
  clients and no helper that builds outgoing frames; callers frame their
  own data and drive `TcpClient` or `WebSocketClient` directly.
- It has no user interface and no command-line entry point.