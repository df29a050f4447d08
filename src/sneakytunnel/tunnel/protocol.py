"""
Tunnel protocol definitions and utilities.

Wire format (binary):
┌──────────┬──────────────┬─────────────────────┐
│ Flag (1B)│ Reserved (1B)│  Payload (var)      │
└──────────┴──────────────┴─────────────────────┘

Total header: 2 bytes. The reserved byte is always 0 on send and ignored
on receive. ANNOUNCE carries the 2-byte encoded service port as payload.
"""

import struct
from enum import Enum, IntEnum

from sneakytunnel.exceptions import MalformedPacket

# =============================================================================
# Packet Flags
# =============================================================================


class PacketFlag(IntEnum):
    """First header byte of every tunnel packet."""

    DATA = 0  # Bidirectional: relayed payload
    DUMMY = 1  # Bidirectional: hole punch / liveness proof
    SERVER_KEEPALIVE = 2  # Server → Client: keepalive ping
    ANNOUNCE = 4  # Client → Server: local service port
    KEEPALIVE_ACK = 5  # Client → Server: keepalive pong


class PortByteOrder(str, Enum):
    """
    Byte order of the port field inside ANNOUNCE.

    BIG is the default. LITTLE matches relays deployed with the earlier
    client, which wrote the low byte first.
    """

    BIG = "big"
    LITTLE = "little"


# =============================================================================
# Header Format
# =============================================================================

HEADER_FORMAT = ">BB"  # flag, reserved
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 2 bytes
RESERVED = 0

PORT_FORMATS = {
    PortByteOrder.BIG: ">H",
    PortByteOrder.LITTLE: "<H",
}


def flag_name(flag: int) -> str:
    """Human readable flag name for logging."""
    try:
        return PacketFlag(flag).name
    except ValueError:
        return f"UNKNOWN({flag})"


# =============================================================================
# Port Encoding
# =============================================================================


def encode_port(port: int, byte_order: PortByteOrder = PortByteOrder.BIG) -> bytes:
    """
    Encode a 16-bit port into two bytes.

    Args:
        port: Port number (0-65535)
        byte_order: Byte order of the encoded field

    Returns:
        Two bytes

    Raises:
        ValueError: If port does not fit in 16 bits
    """
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"Port out of range: {port}")
    return struct.pack(PORT_FORMATS[PortByteOrder(byte_order)], port)


def decode_port(data: bytes, byte_order: PortByteOrder = PortByteOrder.BIG) -> int:
    """Decode a port previously produced by encode_port."""
    if len(data) != 2:
        raise MalformedPacket(f"Port field must be 2 bytes, got {len(data)}")
    return struct.unpack(PORT_FORMATS[PortByteOrder(byte_order)], data)[0]


# =============================================================================
# Framing
# =============================================================================


def frame(flag: int, payload: bytes = b"") -> bytes:
    """
    Build a tunnel packet.

    Args:
        flag: Packet flag (PacketFlag.DATA, PacketFlag.DUMMY, etc.)
        payload: Packet payload

    Returns:
        Complete packet as bytes
    """
    return struct.pack(HEADER_FORMAT, flag, RESERVED) + bytes(payload)


def parse(raw: bytes) -> tuple[int, bytes]:
    """
    Split a tunnel packet into flag and payload.

    Args:
        raw: Raw datagram

    Returns:
        (flag, payload) tuple

    Raises:
        MalformedPacket: If the datagram is shorter than the header
    """
    if len(raw) < HEADER_SIZE:
        raise MalformedPacket(f"Packet too short ({len(raw)} bytes)")

    flag, _reserved = struct.unpack(HEADER_FORMAT, raw[:HEADER_SIZE])
    return flag, bytes(raw[HEADER_SIZE:])


# =============================================================================
# Packet Builders
# =============================================================================


def build_dummy() -> bytes:
    return frame(PacketFlag.DUMMY)


def build_keepalive_ack() -> bytes:
    return frame(PacketFlag.KEEPALIVE_ACK)


def build_announce(
    service_port: int, byte_order: PortByteOrder = PortByteOrder.BIG
) -> bytes:
    """ANNOUNCE packet telling the server which local port we relay to."""
    return frame(PacketFlag.ANNOUNCE, encode_port(service_port, byte_order))


def build_data(payload: bytes) -> bytes:
    return frame(PacketFlag.DATA, payload)
