import struct

from .errors import OutOfBounds


class ByteCursor:
    """
    Forward-only reader over an immutable byte buffer.

    All multi-byte integers are big-endian. The buffer is wrapped in a
    memoryview, so sub-ranges handed out by bytes_at() share memory with the
    source instead of copying it.
    """

    def __init__(self, data, offset=0):
        self.data = memoryview(data)
        if self.data.ndim != 1 or self.data.itemsize != 1:
            self.data = self.data.cast('B')
        self.offset = 0
        self.seek(offset)

    def __len__(self):
        return len(self.data)

    def remaining(self):
        return max(0, len(self.data) - self.offset)

    def at_end(self):
        return self.offset >= len(self.data)

    def check(self, offset, width):
        if offset < 0 or width < 0 or offset + width > len(self.data):
            raise OutOfBounds(offset, width, len(self.data))

    # Absolute reads

    def unpack_at(self, fmt, offset):
        width = struct.calcsize(fmt)
        self.check(offset, width)
        return struct.unpack_from(fmt, self.data, offset)

    def u8_at(self, offset):
        self.check(offset, 1)
        return self.data[offset]

    def u16_at(self, offset):
        return self.unpack_at('>H', offset)[0]

    def s16_at(self, offset):
        return self.unpack_at('>h', offset)[0]

    def u32_at(self, offset):
        return self.unpack_at('>I', offset)[0]

    def bytes_at(self, offset, n):
        self.check(offset, n)
        return self.data[offset:offset+n]

    # Relative reads

    def seek(self, offset):
        if offset < self.offset:
            raise ValueError(f"cursor cannot move backwards (0x{self.offset:X} -> 0x{offset:X})")
        self.offset = offset

    def skip(self, n):
        self.seek(self.offset + n)

    def read(self, fmt):
        values = self.unpack_at(fmt, self.offset)
        self.offset += struct.calcsize(fmt)
        return values

    def read_u16(self):
        return self.read('>H')[0]

    def read_u32(self):
        return self.read('>I')[0]

    def read_bytes(self, n):
        val = self.bytes_at(self.offset, n)
        self.offset += n
        return val
