import logging

import pytest

from tp4000_lib.decoder import (
    FrameTooLong,
    InvalidFraming,
    PowerOn,
    Reading,
    ShortFrame,
    SlotBuffer,
    StreamError,
    UnknownDigit,
)
from tp4000_lib.reader import BufferByteSource, MeterReader, decode_bytes


class FailingSource:
    """Hands out a few bytes, then the port goes away."""

    def __init__(self, data: bytes):
        self.data = list(data)

    def read_byte(self) -> int:
        if not self.data:
            raise StreamError("device unplugged")
        return self.data.pop(0)


def test_buffer_source_counts_and_ends():
    source = BufferByteSource([0x27, 0x3D])

    assert len(source) == 2
    assert source.read_byte() == 0x27
    assert source.remaining == 1
    source.read_byte()

    with pytest.raises(StreamError):
        source.read_byte()


def test_decode_bytes_back_to_back_frames(example_frame):
    frames = decode_bytes(example_frame * 2)

    assert len(frames) == 2
    assert all(frame.ok for frame in frames)
    assert [(f.start, f.end) for f in frames] == [(0, 13), (13, 26)]
    assert isinstance(frames[0].slots, SlotBuffer)
    assert frames[0].result == frames[1].result


def test_errors_do_not_stop_the_stream(example_frame):
    data = (
        b"\x00"                         # power on
        + example_frame[-3:]            # tail of a frame we joined late
        + b"\x27\xf1"                   # line noise
        + bytes([0x21] * 15)            # no terminal byte
        + example_frame
    )
    reader = MeterReader(BufferByteSource(data))

    frames = list(reader.frames())

    assert [type(f.result) for f in frames] == [
        PowerOn, ShortFrame, InvalidFraming, FrameTooLong, Reading,
    ]
    assert str(frames[-1].result) == "04.71 kilo Ohms (unknown E8)"
    assert reader.power_on_count == 1
    assert reader.frames_dropped == 3
    assert reader.frames_ok == 1
    assert reader.end_of_stream
    assert reader.position == len(data)


def test_unknown_digit_frame_is_dropped(example_frame):
    bad = bytearray(example_frame)
    bad[2], bad[3] = 0x47, 0x50         # digit 2 -> code 0x70

    frames = decode_bytes(bytes(bad) + example_frame)

    assert isinstance(frames[0].result, UnknownDigit)
    assert frames[0].slots is not None
    assert frames[0].reading is None
    assert frames[1].ok


def test_readings_only_yields_readings(example_frame):
    reader = MeterReader(BufferByteSource(b"\x00" + example_frame + b"\xff" + example_frame))

    readings = list(reader.readings())

    assert len(readings) == 2
    assert all(isinstance(r, Reading) for r in readings)


def test_partial_frame_at_end_is_discarded(example_frame, caplog):
    reader = MeterReader(BufferByteSource(example_frame + example_frame[:4]))

    with caplog.at_level(logging.DEBUG, logger="tp4000_lib.reader"):
        frames = list(reader.frames())

    assert len(frames) == 1
    assert reader.end_of_stream
    assert "4 bytes discarded" in caplog.text


def test_dropped_frames_are_logged(example_frame, caplog):
    with caplog.at_level(logging.INFO, logger="tp4000_lib.reader"):
        decode_bytes(b"\x00\xf3" + example_frame)

    messages = [r.getMessage() for r in caplog.records]
    assert any("Meter ON" in m for m in messages)
    assert any("Dropped frame at byte 1: Invalid framing byte 0xF3" in m for m in messages)
    assert any(r.levelno == logging.WARNING for r in caplog.records)


def test_stream_failure_propagates(example_frame):
    reader = MeterReader(FailingSource(example_frame + b"\x27"))
    frames = reader.frames()

    assert next(frames).ok
    with pytest.raises(StreamError, match="unplugged"):
        next(frames)
    assert not reader.end_of_stream


def test_single_read_raises_at_end():
    reader = MeterReader(BufferByteSource(b""))

    with pytest.raises(StreamError):
        reader.read()


def test_same_bytes_decode_identically(example_frame):
    first = decode_bytes(example_frame)
    second = decode_bytes(example_frame)

    assert first[0].result == second[0].result
    assert first[0].slots == second[0].slots
