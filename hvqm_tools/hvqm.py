"""
HVQM2 container structures.

Layout reference: the HVQM2 (N64 HVQM 2.0 movie) file header and record
headers, all big-endian.

  0x00  file header (0x3C bytes)
  0x3C  records, back to back:
          +0x0  u16 record type   (0 = audio, 1 = video)
          +0x2  u16 data format   (audio: 0 key / 1 predict,
                                   video: 0 key / 1 predict / 2 hold)
          +0x4  u32 payload size  (excluding this 8-byte header)
          +0x8  payload

Audio payload:  u32 sample count, then the ADPCM stream.
Video payload:  frame header (0x34), then a key frame header (0x10) or a
                predict frame header (0x8); hold frames have neither. The
                rest is HVQ picture data, which is not decoded here.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .adpcm import AdpcmMode
from .common.cursor import ByteCursor
from .common.errors import MalformedHeader, NotAudio, UnknownDataFormat, UnknownRecordType

HVQM2_SIGNATURE = b'HVQM2 1.0' + b'\x00' * 7

FILE_HEADER_SIZE = 0x3C
RECORD_HEADER_SIZE = 0x8
AUDIO_HEADER_SIZE = 0x4
FRAME_HEADER_SIZE = 0x34
KEYFRAME_HEADER_SIZE = 0x10
PREDICT_HEADER_SIZE = 0x8


def _cursor(data):
    return data if isinstance(data, ByteCursor) else ByteCursor(data)


class RecordType(Enum):
    AUDIO = 0
    VIDEO = 1

    @classmethod
    def from_code(cls, code):
        try:
            return cls(code)
        except ValueError:
            raise UnknownRecordType(code) from None


class DataFormat(Enum):
    AUDIO_KEYFRAME = (RecordType.AUDIO, 0)
    AUDIO_PREDICT = (RecordType.AUDIO, 1)
    VIDEO_KEYFRAME = (RecordType.VIDEO, 0)
    VIDEO_PREDICT = (RecordType.VIDEO, 1)
    VIDEO_HOLD = (RecordType.VIDEO, 2)

    @classmethod
    def from_code(cls, code, record_type):
        try:
            return cls((record_type, code))
        except ValueError:
            raise UnknownDataFormat(code, record_type) from None

    @property
    def record_type(self):
        return self.value[0]

    @property
    def code(self):
        return self.value[1]

    def adpcm_mode(self):
        if self is DataFormat.AUDIO_KEYFRAME:
            return AdpcmMode.RESET
        if self is DataFormat.AUDIO_PREDICT:
            return AdpcmMode.CONTINUE
        raise NotAudio(self)


@dataclass(frozen=True)
class ContainerHeader:
    file_version: bytes
    file_size: int              # bytes
    width: int                  # pixels
    height: int
    h_sampling_rate: int        # UV sampling step, horizontal
    v_sampling_rate: int        # UV sampling step, vertical
    y_shiftnum: int
    video_quantize_shift: int
    total_frames: int           # video records
    usec_per_frame: int
    max_frame_size: int         # largest video payload
    max_sp_packets: int
    audio_format: int
    channels: int
    sample_bits: int
    audio_quantize_step: int
    total_audio_records: int
    samples_per_sec: int
    max_audio_record_size: int  # largest audio payload

    LAYOUT = '>16sIHHBBBBIIIIBBBBIII'

    @classmethod
    def parse(cls, data, check=True):
        fields = _cursor(data).unpack_at(cls.LAYOUT, 0)
        header = cls(*fields)
        if check and not header.valid():
            raise MalformedHeader(f"bad signature {header.file_version!r}")
        return header

    def valid(self):
        return self.file_version == HVQM2_SIGNATURE

    @property
    def version_string(self):
        return self.file_version.split(b'\x00', 1)[0].decode('ascii', errors='replace')

    @property
    def compress_type(self):
        return "4:2:2" if self.v_sampling_rate == 1 else "4:1:1"

    @property
    def frame_rate(self):
        if self.usec_per_frame == 0:
            return 0.0
        return 1000000.0 / self.usec_per_frame


@dataclass(frozen=True)
class RecordHeader:
    type_code: int
    format_code: int
    size: int

    @classmethod
    def parse(cls, data, offset):
        return cls(*_cursor(data).unpack_at('>HHI', offset))

    def record_type(self):
        return RecordType.from_code(self.type_code)

    def data_format(self):
        return DataFormat.from_code(self.format_code, self.record_type())


@dataclass(frozen=True)
class AudioHeader:
    samples: int    # per channel

    @classmethod
    def parse(cls, data, offset):
        return cls(_cursor(data).u32_at(offset))


@dataclass(frozen=True)
class FrameHeader:
    basisnum_offset: Tuple[int, int]        # basis numbers (luma, chroma)
    basnumrn_offset: Tuple[int, int]        # basis number runs (luma, chroma)
    scale_offset: Tuple[int, int, int]      # basis coefficients (Y, U, V)
    fixvl_offset: Tuple[int, int, int]      # fixed length codes (Y, U, V)
    dcval_offset: Tuple[int, int, int]      # block DC values (Y, U, V)

    @classmethod
    def parse(cls, data, offset):
        v = _cursor(data).unpack_at('>13I', offset)
        return cls(v[0:2], v[2:4], v[4:7], v[7:10], v[10:13])


@dataclass(frozen=True)
class KeyFrameHeader:
    dcrun_offset: Tuple[int, int, int]      # DC value runs (Y, U, V)
    nest_start_x: int
    nest_start_y: int

    @classmethod
    def parse(cls, data, offset):
        v = _cursor(data).unpack_at('>3IHH', offset)
        return cls(v[0:3], v[3], v[4])


@dataclass(frozen=True)
class PredictFrameHeader:
    movevector_offset: int
    macroblock_offset: int

    @classmethod
    def parse(cls, data, offset):
        return cls(*_cursor(data).unpack_at('>II', offset))


@dataclass(frozen=True)
class RecordPayloadView:
    """
    A record's byte range and parsed sub-headers.

    Deliberately not a decoded picture or sound; `payload` is a memoryview
    into the file buffer.
    """
    index: int
    offset: int                 # of the record header in the file
    header: RecordHeader
    data_format: DataFormat
    payload: memoryview
    audio: Optional[AudioHeader] = None
    frame: Optional[FrameHeader] = None
    keyframe: Optional[KeyFrameHeader] = None
    predict: Optional[PredictFrameHeader] = None

    @property
    def payload_offset(self):
        return self.offset + RECORD_HEADER_SIZE

    @property
    def end(self):
        return self.payload_offset + self.header.size

    @property
    def record_type(self):
        return self.data_format.record_type
