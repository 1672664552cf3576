# -*- coding: utf-8 -*-

"""
Unit tests for the default frame codec.
"""
import pytest

from linkio.codec import CRC_EXTRA
from linkio.codec import CrcMismatch
from linkio.codec import MavlinkV1Codec
from linkio.codec import Message
from linkio.codec import NeedMoreBytes
from linkio.codec import STX_V1
from linkio.codec import UnknownMessage
from linkio.codec import x25_crc

HEARTBEAT = Message(0, bytes(9), sysid=1, compid=240, seq=7)


class TestChecksum:
    """Test the X.25 checksum and the seed table."""

    def test_check_value(self):
        """CRC-16/MCRF4XX check value."""
        assert x25_crc(b'123456789') == 0x6F91

    def test_empty_input_keeps_seed(self):
        assert x25_crc(b'') == 0xFFFF

    def test_seed_table_is_read_only(self):
        with pytest.raises(TypeError):
            CRC_EXTRA[0] = 1

    def test_heartbeat_seed(self):
        assert CRC_EXTRA[0] == 50


class TestMavlinkV1Codec:
    """Test framing and validation."""

    def test_frame_layout(self, codec):
        frame = codec.encode(HEARTBEAT)

        assert len(frame) == 6 + 9 + 2
        assert frame[:6] == bytes((STX_V1, 9, 7, 1, 240, 0))

    def test_decode_encoded_frame(self, codec):
        frame = codec.encode(HEARTBEAT)

        message, consumed = codec.decode(frame + b'\xfe\x09')

        assert message == HEARTBEAT
        assert consumed == len(frame)

    def test_partial_frame(self, codec):
        frame = codec.encode(HEARTBEAT)

        with pytest.raises(NeedMoreBytes) as exc_info:
            codec.decode(frame[:10])

        assert exc_info.value.consumed == 0

    def test_garbage_before_frame(self, codec):
        frame = codec.encode(HEARTBEAT)

        message, consumed = codec.decode(b'\x00\x01\x02' + frame)

        assert message == HEARTBEAT
        assert consumed == 3 + len(frame)

    def test_garbage_only(self, codec):
        with pytest.raises(NeedMoreBytes) as exc_info:
            codec.decode(b'\x00\x01\x02')

        assert exc_info.value.consumed == 3

    def test_corrupted_payload(self, codec):
        frame = bytearray(codec.encode(HEARTBEAT))
        frame[8] ^= 0xFF

        with pytest.raises(CrcMismatch) as exc_info:
            codec.decode(bytes(frame))

        assert exc_info.value.msgid == 0
        assert exc_info.value.consumed == len(frame)

    def test_seed_mismatch(self, codec):
        """Frames built with a different seed table are rejected."""
        other = MavlinkV1Codec(crc_extra={0: 51})

        with pytest.raises(CrcMismatch):
            codec.decode(other.encode(HEARTBEAT))

    def test_unknown_msgid_uses_zero_seed(self):
        codec = MavlinkV1Codec(crc_extra={})
        message = Message(200, b'\x01\x02', sysid=3, compid=4)

        assert codec.decode(codec.encode(message))[0] == message

    def test_unknown_msgid_with_foreign_seed(self):
        """Frames whose id has no local seed are not reported as corrupt."""
        sender = MavlinkV1Codec(crc_extra={180: 7})
        frame = sender.encode(Message(180, bytes(4)))

        with pytest.raises(UnknownMessage) as exc_info:
            MavlinkV1Codec().decode(frame + b'\x00')

        assert exc_info.value.msgid == 180
        assert exc_info.value.consumed == len(frame)

    def test_common_telemetry_ids(self, codec):
        """VFR_HUD built with its published seed decodes."""
        frame = MavlinkV1Codec(crc_extra={74: 20}).encode(Message(74, bytes(20)))

        assert codec.decode(frame)[0].msgid == 74

    def test_payload_too_long(self, codec):
        with pytest.raises(ValueError):
            codec.encode(Message(0, bytes(256)))
