import wave

import numpy as np
import pytest

from hvqm_builders import FRAME_OFFSETS, audio_record, container, file_header, record, video_record

from hvqm_tools.adpcm import AdpcmMode, AdpcmState, decode_adpcm
from hvqm_tools.common.errors import MalformedHeader, OutOfBounds, UnknownDataFormat, UnknownRecordType
from hvqm_tools.hvqm import DataFormat, RecordType
from hvqm_tools.hvqm_extract import HvqmReader, format_header, format_record, main


def single_audio_file():
    return container(audio_record(0, 3, [0x12, 0x34, 0x0F]),
                     channels=1, sample_bits=16, total_audio_records=1)


def mixed_file():
    return container(
        audio_record(0, 3, [0x12, 0x34, 0x0F]),
        video_record(0),
        audio_record(1, 4, [0x80, 0x17]),
        video_record(1),
        video_record(2),
        total_audio_records=2, total_frames=3,
    )


def test_single_audio_record():
    reader = HvqmReader(single_audio_file()).read_all()
    assert reader.audio_samples == [4608, 4740, 2936]
    assert reader.audio_records == 1
    assert reader.video_records == 0
    assert reader.record_count == 1
    assert reader.compressed_audio_size == 4 + 3
    assert reader.mismatches() == []

    view = reader.records[0]
    assert view.data_format is DataFormat.AUDIO_KEYFRAME
    assert view.record_type is RecordType.AUDIO
    assert view.audio.samples == 3
    assert view.offset == 0x3C
    assert view.payload_offset == 0x44
    assert view.end == 0x44 + 7


def test_walk_dispatches_by_record_type():
    reader = HvqmReader(mixed_file())
    results = list(reader.walk())
    formats = [view.data_format for view, _ in results]
    assert formats == [
        DataFormat.AUDIO_KEYFRAME,
        DataFormat.VIDEO_KEYFRAME,
        DataFormat.AUDIO_PREDICT,
        DataFormat.VIDEO_PREDICT,
        DataFormat.VIDEO_HOLD,
    ]

    key_view, key_pcm = results[1]
    assert key_pcm is None
    assert key_view.frame.basisnum_offset == FRAME_OFFSETS[0:2]
    assert key_view.keyframe.nest_start_x == 16
    assert key_view.keyframe.nest_start_y == 8
    assert key_view.predict is None

    predict_view = results[3][0]
    assert predict_view.predict.movevector_offset == 0x300
    assert predict_view.predict.macroblock_offset == 0x310
    assert predict_view.keyframe is None

    hold_view = results[4][0]
    assert hold_view.frame is not None
    assert hold_view.keyframe is None and hold_view.predict is None

    assert (reader.audio_records, reader.video_records) == (2, 3)
    assert reader.mismatches() == []


def test_predict_audio_continues_previous_record():
    reader = HvqmReader(mixed_file()).read_all()

    state = AdpcmState()
    expected = decode_adpcm(state, bytes([0x12, 0x34, 0x0F]), AdpcmMode.RESET, 3)
    expected += decode_adpcm(state, bytes([0x80, 0x17]), AdpcmMode.CONTINUE, 4)
    assert reader.audio_samples == expected
    assert reader.state == state
    assert len(reader.audio_samples) == 7


def test_duplicate_channel_output():
    reader = HvqmReader(single_audio_file(), duplicate_channel=True).read_all()
    assert reader.audio_samples == [4608, 4608, 4740, 4740, 2936, 2936]
    assert reader.channels == 2


def test_iter_records_offsets():
    data = mixed_file()
    reader = HvqmReader(data)
    offsets = [offset for _, offset, _ in reader.iter_records()]
    assert offsets[0] == 0x3C
    assert offsets[1] == 0x3C + 8 + 7
    assert len(offsets) == 5
    assert reader.audio_records == 0


def test_bad_signature():
    data = bytearray(single_audio_file())
    data[0] = ord('X')
    with pytest.raises(MalformedHeader):
        HvqmReader(bytes(data))


def test_oversized_record_is_out_of_bounds():
    data = container(
        audio_record(0, 3, [0x12, 0x34, 0x0F]),
        record(0, 1, b'\x00\x00\x00\x02\x11', size=0x100),
    )
    reader = HvqmReader(data)
    with pytest.raises(OutOfBounds) as exc:
        reader.read_all()
    assert exc.value.record_index == 1
    assert exc.value.offset == 0x3C + 8 + 7
    assert "record 1" in str(exc.value)
    # the first record was fully processed and is kept
    assert reader.audio_samples == [4608, 4740, 2936]
    assert reader.record_count == 1


def test_truncated_record_header():
    reader = HvqmReader(single_audio_file() + b'\x00\x01\x00')
    with pytest.raises(OutOfBounds) as exc:
        reader.read_all()
    assert exc.value.record_index == 1


def test_audio_payload_shorter_than_samples():
    data = container(audio_record(1, 10, [0x11, 0x22]))
    with pytest.raises(OutOfBounds) as exc:
        HvqmReader(data).read_all()
    assert exc.value.record_index == 0


def test_unknown_record_type():
    data = container(audio_record(0, 3, [0x12, 0x34, 0x0F]), record(7, 0, b''))
    reader = HvqmReader(data)
    with pytest.raises(UnknownRecordType) as exc:
        reader.read_all()
    assert exc.value.record_index == 1
    assert reader.audio_records == 1


def test_unknown_video_format():
    with pytest.raises(UnknownDataFormat):
        HvqmReader(container(record(1, 5, b'\x00' * 0x40))).read_all()


def test_video_record_too_short_for_frame_header():
    with pytest.raises(OutOfBounds):
        HvqmReader(container(record(1, 2, b'\x00' * 0x20))).read_all()


def test_mismatches_against_header_totals():
    reader = HvqmReader(container(audio_record(0, 1, [0, 0]), total_audio_records=4, total_frames=1))
    reader.read_all()
    assert len(reader.mismatches()) == 2
    summary = reader.summary()
    assert summary['audio_records'] == 1
    assert summary['declared_audio_records'] == 4
    assert summary['decoded_samples'] == 1


def test_empty_container():
    reader = HvqmReader(file_header()).read_all()
    assert reader.record_count == 0
    assert reader.audio_samples == []


def test_report_formatting():
    reader = HvqmReader(mixed_file())
    text = format_header(reader.header)
    assert "File version        : HVQM2 1.0" in text
    assert "Compress type       : 4:2:2" in text
    lines = [format_record(view) for view, _ in reader.walk()]
    assert "AUDIO_KEYFRAME" in lines[0] and "samples=3" in lines[0]
    assert "nest=(16,8)" in lines[1]


def test_cli_writes_audio(tmp_path, capsys):
    src = tmp_path / "INTRO.HVQM"
    src.write_bytes(mixed_file())
    out = tmp_path / "out"

    assert main(['--input', str(src), '--output', str(out), '--info', '--split', '--raw']) == 0

    with wave.open(str(out / "INTRO.HVQM.wav"), 'rb') as w:
        assert w.getnchannels() == 1
        assert w.getsampwidth() == 2
        assert w.getframerate() == 32000
        frames = np.frombuffer(w.readframes(w.getnframes()), dtype='<i2')

    reader = HvqmReader(mixed_file()).read_all()
    assert frames.tolist() == reader.audio_samples

    raw = np.frombuffer((out / "INTRO.HVQM.pcm_raw").read_bytes(), dtype='>i2')
    assert raw.tolist() == reader.audio_samples

    first = np.frombuffer((out / "audio_record_0000.pcm_raw").read_bytes(), dtype='>i2')
    assert first.tolist() == [4608, 4740, 2936]
    assert (out / "audio_record_0002.pcm_raw").exists()
    assert not (out / "audio_record_0001.pcm_raw").exists()

    printed = capsys.readouterr().out
    assert "Audio rate          : 32000 Hz" in printed
    assert "compressed_audio_size = 13" in printed


def test_cli_stereo(tmp_path):
    src = tmp_path / "a.hvqm"
    src.write_bytes(single_audio_file())
    assert main(['--input', str(src), '--output', str(tmp_path), '--stereo']) == 0
    with wave.open(str(tmp_path / "a.hvqm.wav"), 'rb') as w:
        assert w.getnchannels() == 2
        assert w.getnframes() == 3


def test_cli_keeps_audio_before_error(tmp_path, capsys):
    src = tmp_path / "bad.hvqm"
    src.write_bytes(single_audio_file() + record(0, 1, b'\x00', size=0x40))
    assert main(['--input', str(src), '--output', str(tmp_path)]) == 1
    assert (tmp_path / "bad.hvqm.wav").exists()
    assert "record 1 at 0x" in capsys.readouterr().out


def test_cli_rejects_foreign_file(tmp_path, capsys):
    src = tmp_path / "junk.bin"
    src.write_bytes(b'\x00' * 0x80)
    assert main(['--input', str(src), '--output', str(tmp_path)]) == 1
    assert "not an HVQM2 file" in capsys.readouterr().out


def test_cli_missing_file(tmp_path):
    assert main(['--input', str(tmp_path / "nope.hvqm"), '--output', str(tmp_path)]) == 1
