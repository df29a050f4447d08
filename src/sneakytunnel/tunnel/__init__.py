"""
Tunnel wire protocol.

This module provides the packet codec shared by the relay session and
the test harness: the 2-byte header framing and the ANNOUNCE port field.
"""

from sneakytunnel.tunnel.protocol import (
    HEADER_SIZE,
    PacketFlag,
    PortByteOrder,
    build_announce,
    build_data,
    build_dummy,
    build_keepalive_ack,
    decode_port,
    encode_port,
    flag_name,
    frame,
    parse,
)

__all__ = [
    "HEADER_SIZE",
    "PacketFlag",
    "PortByteOrder",
    "build_announce",
    "build_data",
    "build_dummy",
    "build_keepalive_ack",
    "decode_port",
    "encode_port",
    "flag_name",
    "frame",
    "parse",
]
