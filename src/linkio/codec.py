# -*- coding: utf-8 -*-

"""
Codec contract and the default MAVLink v1 frame codec.

Connections only need ``decode()`` and ``encode()``; any object with those two
methods can be passed as ``codec=`` to the factory.

v1 frame layout::

    0xFE | len | seq | sysid | compid | msgid | payload[len] | crc_lo | crc_hi
"""
import struct

from dataclasses import dataclass
from types import MappingProxyType

from typing import Mapping
from typing import Protocol
from typing import Tuple

STX_V1 = 0xFE
HEADER_LEN = 6
CRC_LEN = 2
MAX_PAYLOAD_LEN = 255

# Seed bytes of the common message set, keyed by message id.
CRC_EXTRA: Mapping[int, int] = MappingProxyType({
    0: 50,      # HEARTBEAT
    1: 124,     # SYS_STATUS
    2: 137,     # SYSTEM_TIME
    4: 237,     # PING
    11: 89,     # SET_MODE
    20: 214,    # PARAM_REQUEST_READ
    21: 159,    # PARAM_REQUEST_LIST
    22: 220,    # PARAM_VALUE
    23: 168,    # PARAM_SET
    24: 24,     # GPS_RAW_INT
    25: 23,     # GPS_STATUS
    26: 170,    # SCALED_IMU
    27: 144,    # RAW_IMU
    29: 115,    # SCALED_PRESSURE
    30: 39,     # ATTITUDE
    31: 246,    # ATTITUDE_QUATERNION
    32: 185,    # LOCAL_POSITION_NED
    33: 104,    # GLOBAL_POSITION_INT
    35: 244,    # RC_CHANNELS_RAW
    36: 222,    # SERVO_OUTPUT_RAW
    39: 254,    # MISSION_ITEM
    40: 230,    # MISSION_REQUEST
    42: 28,     # MISSION_CURRENT
    43: 132,    # MISSION_REQUEST_LIST
    44: 221,    # MISSION_COUNT
    45: 232,    # MISSION_CLEAR_ALL
    46: 11,     # MISSION_ITEM_REACHED
    47: 153,    # MISSION_ACK
    62: 183,    # NAV_CONTROLLER_OUTPUT
    65: 118,    # RC_CHANNELS
    66: 148,    # REQUEST_DATA_STREAM
    69: 243,    # MANUAL_CONTROL
    70: 124,    # RC_CHANNELS_OVERRIDE
    73: 38,     # MISSION_ITEM_INT
    74: 20,     # VFR_HUD
    75: 158,    # COMMAND_INT
    76: 152,    # COMMAND_LONG
    77: 143,    # COMMAND_ACK
    109: 185,   # RADIO_STATUS
    111: 34,    # TIMESYNC
    147: 154,   # BATTERY_STATUS
    148: 178,   # AUTOPILOT_VERSION
    241: 90,    # VIBRATION
    242: 104,   # HOME_POSITION
    245: 130,   # EXTENDED_SYS_STATE
    251: 170,   # NAMED_VALUE_FLOAT
    253: 83,    # STATUSTEXT
})


class CodecError(Exception):
    """Base class for codec errors, forwarded unchanged by connections"""

    def __init__(self, message: str, consumed: int = 0):
        super().__init__(message)
        self.consumed = consumed


class NeedMoreBytes(CodecError):
    """
    Buffer holds no complete frame yet.

    ``consumed`` leading bytes are garbage and may be dropped.
    """

    def __init__(self, consumed: int = 0):
        super().__init__(f"need more bytes (skip {consumed})", consumed)


class CrcMismatch(CodecError):
    """Frame checksum does not match; ``consumed`` covers the bad frame"""

    def __init__(self, msgid: int, expected: int, received: int, consumed: int):
        super().__init__(
            f"CRC mismatch for msgid {msgid}: expected 0x{expected:04x}, got 0x{received:04x}",
            consumed
        )
        self.msgid = msgid
        self.expected = expected
        self.received = received


class UnknownMessage(CodecError):
    """
    Frame with a message id outside the seed table.

    Its checksum can not be verified; ``consumed`` covers the whole frame.
    """

    def __init__(self, msgid: int, consumed: int):
        super().__init__(f"no CRC seed for msgid {msgid}", consumed)
        self.msgid = msgid


@dataclass(frozen=True)
class Message:
    msgid: int
    payload: bytes = b''
    sysid: int = 0
    compid: int = 0
    seq: int = 0


class Codec(Protocol):

    def decode(self, buffer: bytes) -> Tuple[Message, int]:
        ...

    def encode(self, message: Message) -> bytes:
        ...


def x25_crc(data: bytes, crc: int = 0xFFFF) -> int:
    """CRC-16/MCRF4XX as used by the MAVLink checksum"""
    for byte in data:
        tmp = (byte ^ crc) & 0xFF
        tmp = (tmp ^ (tmp << 4)) & 0xFF
        crc = ((crc >> 8) ^ (tmp << 8) ^ (tmp << 3) ^ (tmp >> 4)) & 0xFFFF
    return crc


class MavlinkV1Codec:
    """
    Stateless v1 frame codec.

    The receive buffer lives in the connection; ``decode()`` only looks at
    what it is given.
    """

    def __init__(self, crc_extra: Mapping[int, int] = CRC_EXTRA):
        self._crc_extra = crc_extra

    def checksum(self, frame_body: bytes, msgid: int) -> int:
        crc = x25_crc(frame_body)
        return x25_crc(bytes((self._crc_extra.get(msgid, 0),)), crc)

    def decode(self, buffer: bytes) -> Tuple[Message, int]:
        start = buffer.find(bytes((STX_V1,)))
        if start < 0:
            raise NeedMoreBytes(len(buffer))
        if len(buffer) - start < HEADER_LEN:
            raise NeedMoreBytes(start)

        length, seq, sysid, compid, msgid = struct.unpack_from('<5B', buffer, start + 1)
        end = start + HEADER_LEN + length + CRC_LEN
        if len(buffer) < end:
            raise NeedMoreBytes(start)

        body = bytes(buffer[start + 1:end - CRC_LEN])
        received, = struct.unpack_from('<H', buffer, end - CRC_LEN)
        expected = self.checksum(body, msgid)
        if received != expected:
            # unknown ids only pass when the sender also used seed 0
            if msgid not in self._crc_extra:
                raise UnknownMessage(msgid, end)
            raise CrcMismatch(msgid, expected, received, end)

        payload = body[HEADER_LEN - 1:]
        return Message(msgid, payload, sysid, compid, seq), end

    def encode(self, message: Message) -> bytes:
        if len(message.payload) > MAX_PAYLOAD_LEN:
            raise ValueError(f"payload too long: {len(message.payload)} bytes")

        body = struct.pack(
            '<5B',
            len(message.payload),
            message.seq & 0xFF,
            message.sysid & 0xFF,
            message.compid & 0xFF,
            message.msgid & 0xFF,
        ) + bytes(message.payload)
        crc = self.checksum(body, message.msgid & 0xFF)
        return bytes((STX_V1,)) + body + struct.pack('<H', crc)
