#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""I2C drivers for the SCD30 (CO2 / RH / T) and PMSA003I (particulates).

Both drivers talk to the bus through :class:`I2CBus`, a thin wrapper around
``smbus2`` that turns every failed or short transaction into a
:class:`BusError`.  Decoding lives in the module-level ``parse_*`` functions
so that frames captured elsewhere can be decoded without a bus.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from smbus2 import SMBus, i2c_msg

from Registers import celsius_to_fahrenheit, crc8, pick, read_float, read_int

logger = logging.getLogger(__name__)

# =======================
#   SCD30
# =======================
SCD30_ADDR = 0x61
SCD30_START_CMD = bytes([0x00, 0x10, 0x00, 0x00, 0x81])  # ambient pressure 0 = off
SCD30_READY_CMD = bytes([0x02, 0x02])
SCD30_READY_LEN = 2
SCD30_READ_CMD = bytes([0x03, 0x00])
SCD30_FRAME_LEN = 18
SCD30_CO2_OFFSETS = (0, 1, 3, 4)
SCD30_TEMP_OFFSETS = (6, 7, 9, 10)
SCD30_HUM_OFFSETS = (12, 13, 15, 16)

# =======================
#   PMSA003I
# =======================
PMSA003I_ADDR = 0x12
PMSA003I_REGISTER = 0x00
PMSA003I_FRAME_LEN = 32
PMSA003I_CHECKSUM_OFFSET = 0x1E
# (field, offset of the big-endian word), environmental units then counts per 0.1 L
PMSA003I_FIELDS = (
    ("pm1", 0x0A),
    ("pm25", 0x0C),
    ("pm10", 0x0E),
    ("um_pt3", 0x10),
    ("um_pt5", 0x12),
    ("um_1", 0x14),
    ("um_2pt5", 0x16),
    ("um_5", 0x18),
    ("um_10", 0x1A),
)


class BusError(IOError):
    """An I2C transaction failed or returned fewer bytes than requested."""

    def __init__(self, message: str, address: Optional[int] = None) -> None:
        super().__init__(message)
        self.address = address


class NotReadyError(BusError):
    """The sensor never reported a fresh measurement before the deadline."""


class ChecksumError(BusError):
    """A frame failed its integrity check."""


class DecodeError(ValueError):
    """A frame of the wrong size was handed to a parser."""


@dataclass(frozen=True)
class Scd30Reading:
    co2_ppm: float
    humidity_relative: float
    temp_in_f: float


@dataclass(frozen=True)
class Pmsa003iReading:
    pm1: int
    pm25: int
    pm10: int
    um_pt3: int
    um_pt5: int
    um_1: int
    um_2pt5: int
    um_5: int
    um_10: int


class I2CBus:
    """smbus2 bus where every message names its target address."""

    def __init__(self, bus_number: int = 1) -> None:
        self.bus_number = bus_number
        self._bus = SMBus(bus_number)

    def write(self, addr: int, data: bytes) -> None:
        try:
            self._bus.i2c_rdwr(i2c_msg.write(addr, bytes(data)))
        except OSError as err:
            raise BusError(f"write to 0x{addr:02X} failed: {err}", address=addr) from err

    def read(self, addr: int, length: int) -> bytes:
        rd = i2c_msg.read(addr, length)
        try:
            self._bus.i2c_rdwr(rd)
        except OSError as err:
            raise BusError(f"read from 0x{addr:02X} failed: {err}", address=addr) from err
        return _exact(addr, bytes(rd), length)

    def block_read(self, addr: int, register: int, length: int) -> bytes:
        try:
            data = self._bus.read_i2c_block_data(addr, register, length)
        except OSError as err:
            raise BusError(
                f"block read of 0x{register:02X} from 0x{addr:02X} failed: {err}",
                address=addr,
            ) from err
        return _exact(addr, bytes(data), length)

    def close(self) -> None:
        self._bus.close()

    def __enter__(self) -> "I2CBus":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _exact(addr: int, data: bytes, length: int) -> bytes:
    if len(data) != length:
        raise BusError(f"short read from 0x{addr:02X}: {len(data)}/{length} bytes", address=addr)
    return data


# =======================
#   Decoding
# =======================
def _check_len(frame: bytes, length: int, sensor: str) -> None:
    if len(frame) != length:
        raise DecodeError(f"{sensor} frame must be {length} bytes, got {len(frame)}")


def _verify_scd30_crc(frame: bytes) -> None:
    for i in range(0, SCD30_FRAME_LEN, 3):
        expected = frame[i + 2]
        actual = crc8(frame[i:i + 2])
        if actual != expected:
            raise ChecksumError(
                f"SCD30 CRC mismatch at byte {i + 2}: 0x{actual:02X} != 0x{expected:02X}"
            )


def parse_scd30(frame: bytes, verify_crc: bool = False) -> Scd30Reading:
    _check_len(frame, SCD30_FRAME_LEN, "SCD30")
    if verify_crc:
        _verify_scd30_crc(frame)
    co2 = read_float(pick(frame, SCD30_CO2_OFFSETS))
    temp_c = read_float(pick(frame, SCD30_TEMP_OFFSETS))
    hum = read_float(pick(frame, SCD30_HUM_OFFSETS))
    return Scd30Reading(
        co2_ppm=co2,
        humidity_relative=hum,
        temp_in_f=celsius_to_fahrenheit(temp_c),
    )


def parse_pmsa003i(frame: bytes, verify_checksum: bool = False) -> Pmsa003iReading:
    _check_len(frame, PMSA003I_FRAME_LEN, "PMSA003I")
    if verify_checksum:
        expected = read_int(frame[PMSA003I_CHECKSUM_OFFSET:PMSA003I_CHECKSUM_OFFSET + 2])
        actual = sum(frame[:PMSA003I_CHECKSUM_OFFSET]) & 0xFFFF
        if actual != expected:
            raise ChecksumError(
                f"PMSA003I checksum mismatch: 0x{actual:04X} != 0x{expected:04X}"
            )
    fields = {name: read_int(frame[off:off + 2]) for name, off in PMSA003I_FIELDS}
    return Pmsa003iReading(**fields)


# =======================
#   Drivers
# =======================
class SCD30:
    def __init__(self, bus, addr: int = SCD30_ADDR, verify_crc: bool = False) -> None:
        self.bus = bus
        self.addr = addr
        self.verify_crc = verify_crc

    def start_continuous_measurement(self) -> None:
        logger.info(
            "Starting continuous measurement", extra={"sensor": "SCD30", "address": self.addr}
        )
        self.bus.write(self.addr, SCD30_START_CMD)

    def is_ready(self) -> bool:
        self.bus.write(self.addr, SCD30_READY_CMD)
        status = self.bus.read(self.addr, SCD30_READY_LEN)
        return status[1] == 1

    def read_frame(self) -> bytes:
        self.bus.write(self.addr, SCD30_READ_CMD)
        return self.bus.read(self.addr, SCD30_FRAME_LEN)

    def read(self) -> Scd30Reading:
        return parse_scd30(self.read_frame(), verify_crc=self.verify_crc)


class PMSA003I:
    def __init__(self, bus, addr: int = PMSA003I_ADDR, verify_checksum: bool = False) -> None:
        self.bus = bus
        self.addr = addr
        self.verify_checksum = verify_checksum

    def read_frame(self) -> bytes:
        return self.bus.block_read(self.addr, PMSA003I_REGISTER, PMSA003I_FRAME_LEN)

    def read(self) -> Pmsa003iReading:
        return parse_pmsa003i(self.read_frame(), verify_checksum=self.verify_checksum)
