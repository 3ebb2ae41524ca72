"""IPC transport over a Unix domain socket or Windows named pipe.

Wire format (both directions), little-endian:
- uint32 opcode
- uint32 body length
- UTF-8 JSON body

After the channel opens, the client sends a HANDSHAKE frame with its client
id; the endpoint answers with a READY dispatch in a regular FRAME.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import struct
import sys
import uuid
from enum import IntEnum
from typing import Any

from ..config import PathFormatter, TransportConfig
from ..errors import NoEndpointFoundError
from .base import CloseReason, Transport

logger = logging.getLogger(__name__)

HEADER = struct.Struct("<II")
PIPE_COUNT = 10
MAX_FRAME_SIZE = 8 * 1024 * 1024


class FrameTooLargeError(ValueError):
    """A frame header announced a body larger than MAX_FRAME_SIZE."""


class OpCode(IntEnum):
    """Frame opcodes."""

    HANDSHAKE = 0
    FRAME = 1
    CLOSE = 2
    PING = 3
    PONG = 4


def encode_frame(op: OpCode | int, payload: Any) -> bytes:
    """Encode one frame."""
    body = json.dumps(payload).encode("utf-8")
    return HEADER.pack(int(op), len(body)) + body


async def read_frame(reader: asyncio.StreamReader) -> tuple[int, Any]:
    """Read one frame.

    Raises:
        asyncio.IncompleteReadError: On EOF mid-frame or before a header
        FrameTooLargeError: If the announced body exceeds MAX_FRAME_SIZE
    """
    header = await reader.readexactly(HEADER.size)
    op, length = HEADER.unpack(header)
    if length > MAX_FRAME_SIZE:
        raise FrameTooLargeError(f"Frame body of {length} bytes exceeds {MAX_FRAME_SIZE}")
    body = await reader.readexactly(length) if length else b""
    return op, json.loads(body.decode("utf-8")) if body else None


def _socket_dirs() -> list[str]:
    env_keys = ("XDG_RUNTIME_DIR", "TMPDIR", "TMP", "TEMP")
    base = next((os.environ[key] for key in env_keys if os.environ.get(key)), "/tmp")
    base = base.rstrip("/") or "/"
    return [
        base,
        os.path.join(base, "app", "com.discordapp.Discord"),
        os.path.join(base, "snap.discord"),
    ]


def default_path_formatters() -> list[PathFormatter]:
    """Candidate path formatters for the current platform."""
    if sys.platform == "win32":
        return [lambda i: rf"\\?\pipe\discord-ipc-{i}"]
    return [lambda i, d=d: os.path.join(d, f"discord-ipc-{i}") for d in _socket_dirs()]


async def _open_connection(path: str) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    if sys.platform == "win32":
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        transport, _ = await loop.create_pipe_connection(  # type: ignore[attr-defined]
            lambda: protocol, path
        )
        writer = asyncio.StreamWriter(transport, protocol, reader, loop)
        return reader, writer
    return await asyncio.open_unix_connection(path)


class IPCTransport(Transport):
    """Framed transport over the endpoint's local IPC socket."""

    def __init__(self, config: TransportConfig):
        super().__init__(config)
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._path: str | None = None

    @property
    def path(self) -> str | None:
        """Socket path of the current connection, if any."""
        return self._path

    def candidate_paths(self) -> list[str]:
        """Paths to try, in order."""
        formatters = self.config.path_formatters or default_path_formatters()
        ids = [self.config.pipe_id] if self.config.pipe_id is not None else range(PIPE_COUNT)
        return [fmt(i) for fmt in formatters for i in ids]

    async def _do_connect(self) -> None:
        attempts: list[tuple[str, BaseException]] = []

        for path in self.candidate_paths():
            try:
                reader, writer = await _open_connection(path)
            except OSError as e:
                attempts.append((path, e))
                continue
            self._reader, self._writer, self._path = reader, writer, path
            break
        else:
            raise NoEndpointFoundError("Could not connect to IPC endpoint", attempts=attempts)

        logger.debug(f"IPC socket open at {self._path}")
        writer.write(encode_frame(OpCode.HANDSHAKE, {"v": 1, "client_id": self.config.client_id}))
        self._reader_task = asyncio.create_task(self._read_loop(reader, writer))

    async def _do_close(self) -> None:
        if self._writer is None:
            self._emit_close()
            return
        self._write(OpCode.CLOSE, {})
        self._writer.close()

    def send(self, payload: dict[str, Any]) -> None:
        self._write(OpCode.FRAME, payload)

    def ping(self) -> None:
        self._write(OpCode.PING, {"nonce": str(uuid.uuid4())})

    def _write(self, op: OpCode, payload: Any) -> None:
        if self._writer is None or self._writer.is_closing():
            logger.debug(f"Dropping {op.name} frame on closed IPC socket")
            return
        try:
            self._writer.write(encode_frame(op, payload))
        except (OSError, RuntimeError) as e:
            # Reader sees the broken pipe and emits close
            logger.error(f"IPC write error: {e}")
            self._writer.close()

    async def _read_loop(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        reason: CloseReason | None = None
        try:
            while True:
                op, data = await read_frame(reader)
                if op == OpCode.FRAME:
                    self._emit_message(data)
                elif op == OpCode.PING:
                    self._write(OpCode.PONG, data)
                elif op == OpCode.CLOSE:
                    reason = CloseReason.from_data(data)
                    break
                elif op == OpCode.PONG:
                    continue
                else:
                    logger.warning(f"Unknown IPC opcode {op}")
        except asyncio.IncompleteReadError:
            pass
        except (json.JSONDecodeError, UnicodeDecodeError, FrameTooLargeError) as e:
            # Framing is lost once a body fails to decode
            logger.error(f"Malformed IPC frame: {e}")
        except OSError as e:
            logger.error(f"IPC receive error: {e}")
        finally:
            writer.close()
            with contextlib.suppress(Exception):
                await writer.wait_closed()
            self._reader = None
            self._writer = None
            self._path = None
            self._reader_task = None
            self._emit_close(reason)
