import zlib
from pathlib import Path
from typing import Union

CHUNK_SIZE = 1024 * 1024


def bytes_checksum(data: bytes) -> int:
    """CRC-32 of `data` as an unsigned int."""
    return zlib.crc32(data) & 0xFFFFFFFF


def file_checksum(path: Union[str, Path]) -> int:
    """CRC-32 of a file's bytes, read in chunks. Identical bytes -> identical value."""
    crc = 0
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
            crc = zlib.crc32(chunk, crc)
    return crc & 0xFFFFFFFF
