"""
HVQM2 Movie Audio Extractor

Walks the records of an HVQM2 movie (.HVQM), decodes the ADPCM audio records
to 16-bit PCM and writes them out as WAV / raw PCM. Video records are parsed
down to their frame sub-headers only; the HVQ pictures are left alone.

Records carry no markers or back links: the only way from one record to the
next is the payload size in its header, so any bad size or unknown record
code ends the run.

Usage:
    python -m hvqm_tools.hvqm_extract --input INTRO.HVQM --output out --info
    python -m hvqm_tools.hvqm_extract --input INTRO.HVQM --split --raw
"""

import argparse
import os
import sys
import wave

import numpy as np

from .adpcm import AdpcmState, decode_adpcm
from .common.cursor import ByteCursor
from .common.errors import HvqmError, OutOfBounds
from .hvqm import (
    AUDIO_HEADER_SIZE,
    FILE_HEADER_SIZE,
    FRAME_HEADER_SIZE,
    RECORD_HEADER_SIZE,
    AudioHeader,
    ContainerHeader,
    DataFormat,
    FrameHeader,
    KeyFrameHeader,
    PredictFrameHeader,
    RecordHeader,
    RecordPayloadView,
    RecordType,
)


class HvqmReader:
    def __init__(self, data, duplicate_channel=False, verbose=False):
        self.cursor = ByteCursor(data)
        self.header = ContainerHeader.parse(self.cursor)
        self.duplicate_channel = duplicate_channel
        self.verbose = verbose

        self.state = AdpcmState()
        self.audio_samples = []
        self.records = []

        self.record_count = 0
        self.audio_records = 0
        self.video_records = 0
        self.compressed_audio_size = 0

    @property
    def channels(self):
        if self.duplicate_channel:
            return 2
        return self.header.channels or 1

    def iter_records(self):
        """
        Yields (index, offset, RecordHeader) for every record without
        looking inside the payloads.
        """
        cursor = ByteCursor(self.cursor.data, FILE_HEADER_SIZE)
        index = 0
        while not cursor.at_end():
            offset = cursor.offset
            try:
                record = RecordHeader.parse(cursor, offset)
                cursor.check(offset + RECORD_HEADER_SIZE, record.size)
            except HvqmError as e:
                raise e.at(index, offset)
            yield index, offset, record
            cursor.skip(RECORD_HEADER_SIZE + record.size)
            index += 1

    def walk(self):
        """
        Parses and decodes every record in file order.

        Yields (RecordPayloadView, pcm) per record, pcm being the decoded
        samples of an audio record and None for video. Decoded audio is also
        collected in self.audio_samples.
        """
        for index, offset, record in self.iter_records():
            try:
                data_format = record.data_format()
                start = offset + RECORD_HEADER_SIZE
                payload = self.cursor.bytes_at(start, record.size)

                if data_format.record_type is RecordType.AUDIO:
                    view, pcm = self._audio_record(index, offset, record, data_format, payload)
                else:
                    view, pcm = self._video_record(index, offset, record, data_format, payload), None
            except HvqmError as e:
                raise e.at(index, offset)

            self.record_count += 1
            self.records.append(view)
            if self.verbose:
                print(format_record(view))
            yield view, pcm

    def _audio_record(self, index, offset, record, data_format, payload):
        audio = AudioHeader.parse(payload, 0)
        mode = data_format.adpcm_mode()
        pcm = decode_adpcm(self.state, payload[AUDIO_HEADER_SIZE:], mode,
                           audio.samples, self.duplicate_channel)

        self.audio_samples.extend(pcm)
        self.audio_records += 1
        self.compressed_audio_size += record.size
        view = RecordPayloadView(index, offset, record, data_format, payload, audio=audio)
        return view, pcm

    def _video_record(self, index, offset, record, data_format, payload):
        frame = FrameHeader.parse(payload, 0)
        keyframe = predict = None
        if data_format is DataFormat.VIDEO_KEYFRAME:
            keyframe = KeyFrameHeader.parse(payload, FRAME_HEADER_SIZE)
        elif data_format is DataFormat.VIDEO_PREDICT:
            predict = PredictFrameHeader.parse(payload, FRAME_HEADER_SIZE)

        self.video_records += 1
        return RecordPayloadView(index, offset, record, data_format, payload,
                                 frame=frame, keyframe=keyframe, predict=predict)

    def read_all(self):
        for _ in self.walk():
            pass
        return self

    def summary(self):
        return {
            'records': self.record_count,
            'audio_records': self.audio_records,
            'video_records': self.video_records,
            'compressed_audio_size': self.compressed_audio_size,
            'decoded_samples': len(self.audio_samples),
            'declared_audio_records': self.header.total_audio_records,
            'declared_video_records': self.header.total_frames,
        }

    def mismatches(self):
        """Counters that disagree with the totals declared in the file header."""
        found = []
        if self.audio_records != self.header.total_audio_records:
            found.append(f"audio records: read {self.audio_records}, header says {self.header.total_audio_records}")
        if self.video_records != self.header.total_frames:
            found.append(f"video records: read {self.video_records}, header says {self.header.total_frames}")
        return found


def format_header(header):
    lines = [
        f"File version        : {header.version_string}",
        f"File size           : {header.file_size}",
        f"Image width         : {header.width}",
        f"Image height        : {header.height}",
        f"H sampling rate     : {header.h_sampling_rate}",
        f"V sampling rate     : {header.v_sampling_rate}",
        f"Compress type       : {header.compress_type}",
        f"Y shiftnum          : {header.y_shiftnum}",
        f"Video quantized step: {header.video_quantize_shift}",
        f"Total frames        : {header.total_frames}",
        f"Frame interval      : {header.usec_per_frame} usec",
        f"Video rate          : {header.frame_rate:g} frame/sec",
        f"Max frame size      : {header.max_frame_size} bytes",
        f"Max SP packets      : {header.max_sp_packets}",
        f"Audio data format   : {header.audio_format}",
        f"Audio channels      : {header.channels}",
        f"Bits per sample     : {header.sample_bits} bit",
        f"Audio quantized step: {header.audio_quantize_step}",
        f"Total audio records : {header.total_audio_records}",
        f"Audio rate          : {header.samples_per_sec} Hz",
        f"Max audio record    : {header.max_audio_record_size} bytes",
    ]
    return "\n".join(lines)


def format_record(view):
    line = f"[{view.index:04d}] 0x{view.offset:08X} {view.data_format.name:<14} size=0x{view.header.size:X}"
    if view.audio is not None:
        line += f" samples={view.audio.samples}"
    if view.keyframe is not None:
        line += f" nest=({view.keyframe.nest_start_x},{view.keyframe.nest_start_y})"
    if view.predict is not None:
        line += f" mv=0x{view.predict.movevector_offset:X} mb=0x{view.predict.macroblock_offset:X}"
    return line


def write_wav(path, samples, channels, rate):
    pcm = np.asarray(samples, dtype=np.int64).astype('<i2')
    with wave.open(path, 'wb') as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(2)
        wav_file.setframerate(rate)
        wav_file.writeframes(pcm.tobytes())


def write_pcm_raw(path, samples):
    """Big-endian signed 16-bit, no header."""
    pcm = np.asarray(samples, dtype=np.int64).astype('>i2')
    with open(path, 'wb') as f:
        f.write(pcm.tobytes())


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Extract audio from HVQM2 movie files")
    parser.add_argument('--input', required=True, help="Path to .HVQM file")
    parser.add_argument('--output', default="output", help="Output directory")
    parser.add_argument('--info', action='store_true', help="Print the file header")
    parser.add_argument('--records', action='store_true', help="Print one line per record")
    parser.add_argument('--split', action='store_true', help="Also write each audio record as raw PCM")
    parser.add_argument('--raw', action='store_true', help="Also write the whole track as raw big-endian PCM")
    parser.add_argument('--stereo', action='store_true', help="Duplicate mono audio into two channels")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    if not os.path.exists(args.input):
        print(f"Error: File not found: {args.input}")
        return 1

    with open(args.input, 'rb') as f:
        data = f.read()

    os.makedirs(args.output, exist_ok=True)
    name = os.path.basename(args.input)

    try:
        reader = HvqmReader(data, duplicate_channel=args.stereo, verbose=args.records)
    except HvqmError as e:
        print(f"Error: {args.input} is not an HVQM2 file: {e}")
        return 1

    if args.info:
        print(format_header(reader.header))
        print()

    status = 0
    try:
        for view, pcm in reader.walk():
            if args.split and pcm is not None:
                path = os.path.join(args.output, f"audio_record_{view.index:04d}.pcm_raw")
                write_pcm_raw(path, pcm)
    except HvqmError as e:
        print(f"Error: {e}")
        if isinstance(e, OutOfBounds):
            print("File is truncated or a record size is wrong; keeping audio decoded so far.")
        status = 1

    for problem in reader.mismatches():
        print(f"Warning: {problem}")

    if reader.audio_samples:
        if reader.header.sample_bits != 16:
            print(f"Warning: header declares {reader.header.sample_bits}-bit audio, writing 16-bit")
        wav_path = os.path.join(args.output, f"{name}.wav")
        write_wav(wav_path, reader.audio_samples, reader.channels, reader.header.samples_per_sec)
        print(f"Saved Audio: {wav_path}")
        if args.raw:
            raw_path = os.path.join(args.output, f"{name}.pcm_raw")
            write_pcm_raw(raw_path, reader.audio_samples)
            print(f"Saved Raw PCM: {raw_path}")

    print(f"Processed {reader.record_count} records "
          f"({reader.audio_records} audio, {reader.video_records} video).")
    print(f"compressed_audio_size = {reader.compressed_audio_size}")
    return status


if __name__ == '__main__':
    sys.exit(main())
