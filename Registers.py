#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Byte-level helpers shared by the sensor drivers."""

import math
import struct
from typing import Iterable


def read_int(data: bytes) -> int:
    """Big-endian unsigned 16-bit integer."""
    return struct.unpack(">H", bytes(data))[0]


def read_float(data: bytes) -> float:
    """Big-endian IEEE-754 single precision float."""
    return struct.unpack(">f", bytes(data))[0]


def f32(x: float) -> float:
    # nearest single precision value, saturating to +/-inf like the hardware does
    try:
        return struct.unpack(">f", struct.pack(">f", x))[0]
    except OverflowError:
        return math.copysign(math.inf, x)


def f32_shortest(x: float) -> float:
    """Shortest decimal that reads back as the same single precision value."""
    target = f32(x)
    for digits in range(1, 10):
        candidate = float(f"{target:.{digits}g}")
        if f32(candidate) == target:
            return candidate
    return target


def celsius_to_fahrenheit(t: float) -> float:
    # every step rounded to 32 bits, as the sensor values are
    return f32(f32(f32(f32(t) * 9) / 5) + 32)


def pick(frame: bytes, offsets: Iterable[int]) -> bytes:
    # gathers payload bytes around the interleaved CRC bytes
    return bytes(frame[i] for i in offsets)


def crc8(data: bytes) -> int:
    # Sensirion CRC-8: poly 0x31, init 0xFF, one per 16-bit word
    crc = 0xFF
    for b in data:
        crc ^= b
        for _ in range(8):
            crc = ((crc << 1) ^ 0x31) & 0xFF if (crc & 0x80) else ((crc << 1) & 0xFF)
    return crc
