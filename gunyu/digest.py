"""CRC16 (XMODEM) and CRC64 (Jones, reflected) checksums as used by Redis."""

from __future__ import annotations

_CRC16_POLY = 0x1021
_CRC64_POLY_REFLECTED = 0x95AC9329AC4BC9B5
_MASK16 = 0xFFFF
_MASK64 = 0xFFFFFFFFFFFFFFFF


def _build_crc16_table() -> tuple[int, ...]:
    table = []
    for byte in range(256):
        crc = byte << 8
        for _ in range(8):
            crc = ((crc << 1) ^ _CRC16_POLY) if crc & 0x8000 else (crc << 1)
            crc &= _MASK16
        table.append(crc)
    return tuple(table)


def _build_crc64_table() -> tuple[int, ...]:
    table = []
    for byte in range(256):
        crc = byte
        for _ in range(8):
            crc = (crc >> 1) ^ _CRC64_POLY_REFLECTED if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_CRC16_TABLE = _build_crc16_table()
_CRC64_TABLE = _build_crc64_table()


def _as_bytes(data: bytes | bytearray | memoryview | str) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def crc16(data: bytes | bytearray | memoryview | str) -> int:
    """Return the CRC16/XMODEM checksum of ``data``."""
    crc = 0
    for byte in _as_bytes(data):
        crc = ((crc << 8) & _MASK16) ^ _CRC16_TABLE[((crc >> 8) ^ byte) & 0xFF]
    return crc


def _crc64_update(crc: int, data: bytes) -> int:
    for byte in data:
        crc = _CRC64_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc & _MASK64


def crc64(data: bytes | bytearray | memoryview | str) -> int:
    """Return the CRC64 checksum of ``data`` starting from zero."""
    return _crc64_update(0, _as_bytes(data))


class Crc64:
    """Incremental CRC64 hasher."""

    digest_size = 8
    block_size = 1

    def __init__(self, data: bytes | bytearray | memoryview | str = b"") -> None:
        self._crc = 0
        if data:
            self.update(data)

    def update(self, data: bytes | bytearray | memoryview | str) -> None:
        """Feed more bytes into the checksum."""
        self._crc = _crc64_update(self._crc, _as_bytes(data))

    def digest(self) -> bytes:
        """Return the checksum as 8 little-endian bytes."""
        return self._crc.to_bytes(8, "little")

    def reset(self) -> None:
        """Start again from an empty input."""
        self._crc = 0

    def __int__(self) -> int:
        return self._crc