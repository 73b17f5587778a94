"""Low-level packet framing utilities.

Frame layout (16-byte header + JSON payload):
0-1  : 0x5A1C       magic bytes
2    : version (1)
3    : PacketType (enum)
4-7  : seq u32 (big-endian)
8-11 : len u32 (payload length)
12-15: CRC-32 over header[0:12]+payload
16-  : UTF-8 JSON payload

With a key, the payload is ``nonce(12) || AES-GCM(ciphertext+tag)`` of the
JSON bytes; the CRC then covers the encrypted bytes.
"""

from __future__ import annotations

import enum
import json
import os
import struct
import zlib
from io import BufferedReader, BufferedWriter
from typing import Any, Final, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

MAGIC: Final[int] = 0x5A1C
VERSION: Final[int] = 1
HEADER_STRUCT: Final = struct.Struct(">HBBII")
CRC_STRUCT: Final = struct.Struct(">I")
HEADER_LEN: Final[int] = HEADER_STRUCT.size + CRC_STRUCT.size
NONCE_LEN: Final[int] = 12
# Reject excessively large payloads (> 1 MiB); a full grid is a few KiB.
MAX_PAYLOAD: Final[int] = 1024 * 1024


class PacketType(int, enum.Enum):
    """Enumerate SALVO wire-protocol packet categories."""

    GAME = 0
    ERROR = 1


class FrameError(Exception):
    """Base for framing problems."""


class CrcError(FrameError):
    """Raised when a CRC-32 check fails while decoding a frame."""

    def __init__(self, seq: int) -> None:
        super().__init__(f"CRC mismatch on seq {seq}")
        self.seq = seq


class IncompleteError(FrameError):
    """Raised when the stream closes before a full frame could be read."""


def _read_exact(r: BufferedReader, n: int) -> bytes:
    chunks = []
    remaining = n
    while remaining:
        chunk = r.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


class FrameCodec:
    """Encode and decode frames; one instance per connection or per server.

    *key* enables AES-GCM payload encryption and must be 16, 24 or 32 bytes.
    """

    def __init__(self, key: bytes | None = None) -> None:
        if key is not None and len(key) not in (16, 24, 32):
            raise ValueError("AES key must be 16/24/32 bytes")
        self._aead = AESGCM(key) if key is not None else None

    @property
    def encrypted(self) -> bool:
        return self._aead is not None

    # -------------------- bytes --------------------
    def pack(self, ptype: PacketType, seq: int, obj: Any) -> bytes:
        """Serialise *obj* as one frame."""
        payload = json.dumps(obj, separators=(",", ":")).encode()
        if self._aead is not None:
            nonce = os.urandom(NONCE_LEN)
            payload = nonce + self._aead.encrypt(nonce, payload, None)
        if len(payload) > MAX_PAYLOAD:
            raise FrameError(f"Payload too large: {len(payload)} bytes")
        header = HEADER_STRUCT.pack(MAGIC, VERSION, int(ptype), seq & 0xFFFFFFFF, len(payload))
        crc = zlib.crc32(header + payload) & 0xFFFFFFFF
        return header + CRC_STRUCT.pack(crc) + payload

    def unpack(self, r: BufferedReader) -> Tuple[PacketType, int, Any]:
        """Blocking read of the next ``(ptype, seq, obj)`` tuple from *r*."""
        raw = _read_exact(r, HEADER_LEN)
        if len(raw) < HEADER_LEN:
            raise IncompleteError("Incomplete header")
        header = raw[: HEADER_STRUCT.size]
        magic, version, ptype_val, seq, length = HEADER_STRUCT.unpack(header)
        if magic != MAGIC or version != VERSION:
            raise FrameError("magic/version mismatch")
        if length > MAX_PAYLOAD:
            raise FrameError(f"Payload too large: {length} bytes")
        payload = _read_exact(r, length)
        if len(payload) < length:
            raise IncompleteError("Incomplete payload")
        (crc_expected,) = CRC_STRUCT.unpack(raw[HEADER_STRUCT.size :])
        if zlib.crc32(header + payload) & 0xFFFFFFFF != crc_expected:
            raise CrcError(seq)
        try:
            ptype = PacketType(ptype_val)
        except ValueError as exc:
            raise FrameError(f"unknown packet type {ptype_val}") from exc
        if self._aead is not None:
            if len(payload) < NONCE_LEN:
                raise FrameError("encrypted payload too short")
            try:
                payload = self._aead.decrypt(payload[:NONCE_LEN], payload[NONCE_LEN:], None)
            except InvalidTag as exc:
                raise FrameError("AEAD authentication failed") from exc
        try:
            obj = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise FrameError("payload is not valid JSON") from exc
        return ptype, seq, obj

    # -------------------- file-like helpers --------------------
    def send_pkt(self, w: BufferedWriter, ptype: PacketType, seq: int, obj: Any) -> None:
        """Write a single framed packet to buffered writer *w* and flush."""
        w.write(self.pack(ptype, seq, obj))
        w.flush()

    def recv_pkt(self, r: BufferedReader) -> Tuple[PacketType, int, Any]:
        return self.unpack(r)


__all__ = [
    "MAGIC",
    "VERSION",
    "HEADER_LEN",
    "PacketType",
    "FrameCodec",
    "FrameError",
    "CrcError",
    "IncompleteError",
]
