class HvqmError(ValueError):
    """Base class for everything that stops an HVQM2 read."""

    def __init__(self, message):
        super().__init__(message)
        self.message = message
        self.record_index = None
        self.offset = None

    def at(self, record_index, offset):
        """Attach the record index / file offset the error was raised for."""
        self.record_index = record_index
        self.offset = offset
        return self

    def __str__(self):
        if self.record_index is None:
            return self.message
        return f"record {self.record_index} at 0x{self.offset:X}: {self.message}"


class MalformedHeader(HvqmError):
    pass


class UnknownRecordType(HvqmError):
    def __init__(self, code):
        super().__init__(f"unknown record type {code}")
        self.code = code


class UnknownDataFormat(HvqmError):
    def __init__(self, code, record_type):
        super().__init__(f"unknown data format {code} for {record_type.name.lower()} record")
        self.code = code
        self.record_type = record_type


class OutOfBounds(HvqmError):
    def __init__(self, offset, width, length):
        super().__init__(f"read of {width} bytes at 0x{offset:X} exceeds buffer of {length} bytes")
        self.read_offset = offset
        self.width = width
        self.length = length


class NotAudio(HvqmError):
    """Raised when an ADPCM mode is requested for a video data format."""

    def __init__(self, data_format):
        super().__init__(f"{data_format.name} has no ADPCM mode")
        self.data_format = data_format
