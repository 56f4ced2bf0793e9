"""Length-checked little endian field access over a byte buffer."""

import struct
from typing import Optional

from ..errors import TruncatedDataError

class FieldReader:
    """Read fixed-offset fields from a record, refusing to read past its end."""

    def __init__(self, data: bytes, base: int = 0, length: Optional[int] = None):
        """
        Args:
            data: Underlying buffer
            base: Offset of the record inside the buffer
            length: Validated extent of the record, defaults to the rest
                    of the buffer
        """
        self._view = memoryview(data)
        self.base = base
        self.length = len(data) - base if length is None else length
        if base < 0 or self.length < 0 or base + self.length > len(data):
            raise TruncatedDataError(
                f"Record at offset {base} with length {self.length} exceeds "
                f"buffer of {len(data)} bytes")

    def __len__(self) -> int:
        return self.length

    def _check(self, offset: int, size: int) -> int:
        if offset < 0 or size < 0 or offset + size > self.length:
            raise TruncatedDataError(
                f"Field at offset {offset} ({size} bytes) lies beyond "
                f"the {self.length} byte record")
        return self.base + offset

    def bytes_at(self, offset: int, size: int) -> bytes:
        start = self._check(offset, size)
        return self._view[start:start + size].tobytes()

    def u32(self, offset: int) -> int:
        start = self._check(offset, 4)
        return struct.unpack_from('<I', self._view, start)[0]

    def u64(self, offset: int) -> int:
        start = self._check(offset, 8)
        return struct.unpack_from('<Q', self._view, start)[0]
