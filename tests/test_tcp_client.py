import asyncio
import socket

import pytest

from hosetool.tcp_client import (
    ClientError,
    ClientStatus,
    TcpClient,
    TcpClientConfig,
    extract_frames,
)


def test_extract_frames_keeps_partial_tail():
    buffer = bytearray(b"\x00\x01\x00\x02\xaa\xbb\x00\x02\x00\x03\x01")
    frames = extract_frames(buffer)
    assert frames == [b"\x00\x01\x00\x02\xaa\xbb"]
    assert buffer == bytearray(b"\x00\x02\x00\x03\x01")


def test_extract_frames_empty_body_and_short_header():
    buffer = bytearray(b"\x00\x07\x00\x00\x00\x08")
    assert extract_frames(buffer) == [b"\x00\x07\x00\x00"]
    assert buffer == bytearray(b"\x00\x08")


def test_extract_frames_reassembles_after_more_data():
    buffer = bytearray(b"\x00\x01\x00\x03ab")
    assert extract_frames(buffer) == []
    buffer.extend(b"c")
    assert extract_frames(buffer) == [b"\x00\x01\x00\x03abc"]
    assert buffer == bytearray()


async def _serve(handler):
    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    return server, port


async def _wait_for(predicate, timeout=5.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            break
        await asyncio.sleep(0.01)
    return predicate()


@pytest.mark.asyncio
async def test_receives_frames_split_across_writes():
    async def handler(reader, writer):
        writer.write(b"\x00\x05\x00\x03ab")
        await writer.drain()
        await asyncio.sleep(0.05)
        writer.write(b"c\x00\x06\x00\x00")
        await writer.drain()
        await reader.read()
        writer.close()

    server, port = await _serve(handler)
    client = TcpClient("1", TcpClientConfig(host="127.0.0.1", port=port))
    received = []
    client.set_receive_callback(received.append)
    await client.connect()
    assert client.get_status() is ClientStatus.CONNECTED
    assert await _wait_for(lambda: len(received) == 2)
    assert received == [b"\x00\x05\x00\x03abc", b"\x00\x06\x00\x00"]
    await client.disconnect()
    assert client.get_status() is ClientStatus.DISCONNECTED
    server.close()
    await server.wait_closed()


@pytest.mark.asyncio
async def test_send_delivers_bytes():
    got = asyncio.get_running_loop().create_future()

    async def handler(reader, writer):
        got.set_result(await reader.readexactly(6))
        await reader.read()
        writer.close()

    server, port = await _serve(handler)
    client = TcpClient("2", TcpClientConfig(host="127.0.0.1", port=port))
    await client.connect()
    await client.send(b"\x00\x01\x00\x02hi")
    assert await asyncio.wait_for(got, 5) == b"\x00\x01\x00\x02hi"
    await client.disconnect()
    with pytest.raises(ClientError):
        await client.send(b"x")
    server.close()
    await server.wait_closed()


@pytest.mark.asyncio
async def test_disconnect_callback_when_server_closes():
    async def handler(reader, writer):
        writer.close()

    server, port = await _serve(handler)
    client = TcpClient("3", TcpClientConfig(host="127.0.0.1", port=port))
    dropped = asyncio.Event()
    client.set_disconnect_callback(dropped.set)
    await client.connect()
    await asyncio.wait_for(dropped.wait(), 5)
    assert dropped.is_set()
    assert client.get_status() is ClientStatus.DISCONNECTED
    server.close()
    await server.wait_closed()


@pytest.mark.asyncio
async def test_connect_refused_sets_error():
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    client = TcpClient("4", TcpClientConfig(host="127.0.0.1", port=port))
    with pytest.raises(ClientError):
        await client.connect()
    assert client.get_status() is ClientStatus.ERROR
    assert client.last_error.startswith("connection failed")


@pytest.mark.asyncio
async def test_send_before_connect_raises():
    client = TcpClient("5", TcpClientConfig(host="127.0.0.1", port=1))
    assert client.get_status() is ClientStatus.DISCONNECTED
    with pytest.raises(ClientError):
        await client.send(b"\x00\x01\x00\x00")