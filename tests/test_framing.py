import struct
import zlib
from io import BytesIO

import pytest

from salvo.protocol import (
    HEADER_LEN,
    MAGIC,
    VERSION,
    CrcError,
    FrameCodec,
    FrameError,
    IncompleteError,
    PacketType,
)

codec = FrameCodec()


def test_pack_unpack_roundtrip():
    obj = {"event": "attack", "data": {"playerId": "A", "coords": {"x": 1, "y": 2}}}
    ptype, seq, out = codec.unpack(BytesIO(codec.pack(PacketType.GAME, 12345, obj)))
    assert (ptype, seq, out) == (PacketType.GAME, 12345, obj)


def test_header_and_crc_fields():
    obj = {"hello": "world"}
    data = codec.pack(PacketType.ERROR, 1, obj)
    magic, version, ptype_byte, seq_u32, length = struct.unpack(">HBBII", data[:12])
    assert magic == MAGIC
    assert version == VERSION
    assert ptype_byte == PacketType.ERROR.value
    assert seq_u32 == 1
    payload = data[HEADER_LEN:]
    assert length == len(payload)
    crc_expected = struct.unpack(">I", data[12:16])[0]
    assert zlib.crc32(data[:12] + payload) & 0xFFFFFFFF == crc_expected


def test_magic_mismatch_raises_FrameError():
    data = codec.pack(PacketType.GAME, 0, {"x": 1})
    with pytest.raises(FrameError):
        codec.unpack(BytesIO(b"\x00\x00" + data[2:]))


def test_version_mismatch_raises_FrameError():
    data = codec.pack(PacketType.GAME, 0, {"x": 1})
    with pytest.raises(FrameError):
        codec.unpack(BytesIO(data[:2] + b"\x02" + data[3:]))


def test_incomplete_header_raises_IncompleteError():
    data = codec.pack(PacketType.GAME, 0, {"x": 1})
    with pytest.raises(IncompleteError):
        codec.unpack(BytesIO(data[: HEADER_LEN - 1]))
    with pytest.raises(IncompleteError):
        codec.unpack(BytesIO(b""))


def test_incomplete_payload_raises_IncompleteError():
    data = codec.pack(PacketType.GAME, 0, {"x": 1})
    cut = HEADER_LEN + (len(data) - HEADER_LEN) // 2
    with pytest.raises(IncompleteError):
        codec.unpack(BytesIO(data[:cut]))


def test_crc_mismatch_carries_seq():
    data = bytearray(codec.pack(PacketType.GAME, 42, {"foo": "bar"}))
    data[HEADER_LEN] ^= 0xFF
    with pytest.raises(CrcError) as exc:
        codec.unpack(BytesIO(bytes(data)))
    assert exc.value.seq == 42


def test_multiple_frames_stream():
    buf = BytesIO()
    codec.send_pkt(buf, PacketType.GAME, 1, {"msg": 1})
    codec.send_pkt(buf, PacketType.ERROR, 2, {"msg": 2})
    buf.seek(0)
    assert codec.recv_pkt(buf) == (PacketType.GAME, 1, {"msg": 1})
    assert codec.recv_pkt(buf) == (PacketType.ERROR, 2, {"msg": 2})


def test_encryption_roundtrip_hides_payload():
    secure = FrameCodec(bytes(range(16)))
    assert secure.encrypted
    obj = {"secret": "fleet"}
    data = secure.pack(PacketType.GAME, 7, obj)
    assert b"fleet" not in data
    assert secure.unpack(BytesIO(data)) == (PacketType.GAME, 7, obj)


def test_wrong_key_fails_authentication():
    data = FrameCodec(bytes(range(16))).pack(PacketType.GAME, 7, {"a": 1})
    with pytest.raises(FrameError, match="AEAD"):
        FrameCodec(bytes(range(1, 17))).unpack(BytesIO(data))


def test_plaintext_frame_rejected_by_encrypted_codec():
    data = codec.pack(PacketType.GAME, 7, {"a": 1})
    with pytest.raises(FrameError):
        FrameCodec(bytes(32)).unpack(BytesIO(data))


def test_bad_key_length():
    with pytest.raises(ValueError):
        FrameCodec(b"short")
