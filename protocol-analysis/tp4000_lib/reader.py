"""
Meter Stream Reader Module

Turns a byte source into a sequence of decoded frames. Frame errors and
power-on signals are reported and skipped; the meter sends the next packet
about a second later, so nothing is retried.

Usage:
    from reader import MeterReader, BufferByteSource

    reader = MeterReader(BufferByteSource(data))
    for reading in reader.readings():
        print(reading)
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Union

from .decoder import (
    ByteSource,
    EndOfStream,
    FrameAssembler,
    FrameError,
    PowerOn,
    Reading,
    SlotBuffer,
    decode_reading,
)

logger = logging.getLogger(__name__)


class BufferByteSource:
    """In-memory byte source. Raises EndOfStream once exhausted."""

    def __init__(self, data: Union[bytes, bytearray, Iterable[int]]):
        self.data = bytes(data)
        self.position = 0

    def __len__(self) -> int:
        return len(self.data)

    @property
    def remaining(self) -> int:
        return len(self.data) - self.position

    def read_byte(self) -> int:
        if self.position >= len(self.data):
            raise EndOfStream(f"End of buffer after {self.position} bytes")
        byte = self.data[self.position]
        self.position += 1
        return byte


class _CountingSource:
    """Wraps a source and counts bytes handed out."""

    def __init__(self, source: ByteSource):
        self.source = source
        self.count = 0

    def read_byte(self) -> int:
        byte = self.source.read_byte()
        self.count += 1
        return byte


@dataclass
class DecodedFrame:
    """One frame attempt and where it sits in the byte stream."""
    result: Union[Reading, PowerOn, FrameError]
    start: int                         # Offset of first byte
    end: int                           # Offset past last byte
    slots: Optional[SlotBuffer] = None  # Set when framing succeeded

    @property
    def ok(self) -> bool:
        return isinstance(self.result, Reading)

    @property
    def reading(self) -> Optional[Reading]:
        return self.result if isinstance(self.result, Reading) else None

    def __len__(self) -> int:
        return self.end - self.start

    def __repr__(self) -> str:
        return f"DecodedFrame([{self.start}:{self.end}] {self.result})"


class MeterReader:
    """
    Reads frames from a byte source until it ends.

    Args:
        source: Any object with read_byte()
        assembler: FrameAssembler to use (default limits if None)

    EndOfStream stops iteration and sets ``end_of_stream``. Other
    StreamErrors propagate to the caller.
    """

    def __init__(self, source: ByteSource, assembler: Optional[FrameAssembler] = None):
        self.source = _CountingSource(source)
        self.assembler = assembler or FrameAssembler()
        self.end_of_stream = False
        self.frames_ok = 0
        self.frames_dropped = 0
        self.power_on_count = 0

    @property
    def position(self) -> int:
        """Bytes consumed so far."""
        return self.source.count

    def read(self) -> DecodedFrame:
        """Read and decode the next frame. Raises EndOfStream at the end."""
        start = self.source.count
        frame = self.assembler.read_frame(self.source)

        slots = None
        if isinstance(frame, SlotBuffer):
            slots = frame
            result = decode_reading(frame)
        else:
            result = frame

        decoded = DecodedFrame(result=result, start=start, end=self.source.count, slots=slots)
        self._account(decoded)
        return decoded

    def _account(self, frame: DecodedFrame):
        result = frame.result
        if isinstance(result, Reading):
            self.frames_ok += 1
        elif isinstance(result, PowerOn):
            self.power_on_count += 1
            logger.info("Meter ON at byte %d", frame.end - 1)
        else:
            self.frames_dropped += 1
            logger.warning("Dropped frame at byte %d: %s", frame.start, result)

    def frames(self) -> Iterator[DecodedFrame]:
        """Yield every frame attempt until the source ends."""
        while True:
            start = self.source.count
            try:
                yield self.read()
            except EndOfStream:
                partial = self.source.count - start
                if partial:
                    logger.debug("Stream ended mid-frame, %d bytes discarded", partial)
                logger.info("Read EOF after %d bytes", self.source.count)
                self.end_of_stream = True
                return

    def readings(self) -> Iterator[Reading]:
        """Yield only successfully decoded readings."""
        for frame in self.frames():
            if frame.ok:
                yield frame.result


def decode_bytes(data: Union[bytes, bytearray, Iterable[int]]) -> list[DecodedFrame]:
    """Decode every frame in an in-memory buffer."""
    return list(MeterReader(BufferByteSource(data)).frames())
