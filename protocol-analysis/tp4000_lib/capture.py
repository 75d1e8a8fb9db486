"""
Meter Capture Module

Records the raw byte stream from the meter with a timestamp per byte, so a
session can be saved, replayed through the decoder, and opened in a VCD
viewer next to logic analyzer traces.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional, Union
import json
import logging
import pickle
import re
import time
import numpy as np
from vcd import VCDWriter

from .constants import BYTE_INTERVAL, DEFAULT_CAPTURE_DIR, DEFAULT_LABELS, DEFAULT_METER, VCD_TIMESCALE
from .decoder import Annotation, ByteSource, EndOfStream, PowerOn, Reading, StreamTimeout
from .reader import BufferByteSource, DecodedFrame, MeterReader

logger = logging.getLogger(__name__)

# VCD ticks per second for VCD_TIMESCALE
_VCD_TICKS = 1e6


@dataclass
class Capture:
    """
    Attributes:
        time_data: Arrival time (seconds from capture start) of each byte
        byte_data: Raw bytes as received (uint8)
        meter: Meter model (e.g., "TP4000ZC")
        port: Serial port the bytes came from
        name: Descriptive name for the capture
        info: Additional information/notes
        timestamp: When capture was taken (auto-set to now if not provided)
    """
    time_data: np.ndarray
    byte_data: np.ndarray

    meter: str = DEFAULT_METER
    port: str = ""

    name: str = "Unnamed"
    info: str = ""

    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        self.time_data = np.asarray(self.time_data, dtype=np.float64)
        self.byte_data = np.asarray(self.byte_data, dtype=np.uint8)
        if len(self.time_data) != len(self.byte_data):
            raise ValueError(
                f"time_data has {len(self.time_data)} entries, byte_data has {len(self.byte_data)}"
            )

    @property
    def duration(self) -> float:
        """Seconds between first and last byte."""
        if len(self.time_data) == 0:
            return 0.0
        return float(self.time_data[-1] - self.time_data[0])

    @property
    def num_bytes(self) -> int:
        return len(self.byte_data)

    def __repr__(self) -> str:
        return (
            f"Capture('{self.meter}', '{self.name}', {self.num_bytes:,} bytes, "
            f"{self.duration:.1f}s)"
        )

    def get_info(self) -> str:
        frames = self.decode()
        good = sum(1 for f in frames if f.ok)
        return "\n".join([
            f"Capture: {self.name}",
            f"Timestamp: {self.timestamp.strftime('%Y-%m-%d %H:%M:%S')}",
            f"Meter: {self.meter} on {self.port or 'unknown port'}",
            f"Data: {self.num_bytes} bytes over {self.duration:.1f}s, "
            f"{good}/{len(frames)} frames decoded",
            f"Notes: {self.info}"
        ])

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def from_bytes(
        cls,
        data: Union[bytes, bytearray, Iterable[int]],
        byte_interval: float = BYTE_INTERVAL,
        **kwargs
    ) -> "Capture":
        """Build a capture from bytes with evenly spaced timestamps."""
        byte_data = np.frombuffer(bytes(data), dtype=np.uint8)
        time_data = np.arange(len(byte_data)) * byte_interval
        return cls(time_data=time_data, byte_data=byte_data, **kwargs)

    @classmethod
    def record(
        cls,
        source: ByteSource,
        max_bytes: Optional[int] = None,
        duration: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        **kwargs
    ) -> "Capture":
        """
        Record bytes from ``source`` until a byte or time limit is hit,
        the stream ends, or the source times out.
        """
        if max_bytes is None and duration is None and not isinstance(source, BufferByteSource):
            raise ValueError("record() needs max_bytes or duration for a live source")

        values = []
        times = []
        t0 = clock()

        while max_bytes is None or len(values) < max_bytes:
            try:
                byte = source.read_byte()
            except EndOfStream:
                logger.debug("Source ended after %d bytes", len(values))
                break
            except StreamTimeout as exc:
                logger.warning("Recording stopped: %s", exc)
                break

            now = clock() - t0
            values.append(byte)
            times.append(now)

            if duration is not None and now >= duration:
                break

        kwargs.setdefault("port", getattr(source, "port", ""))
        return cls(
            time_data=np.array(times, dtype=np.float64),
            byte_data=np.array(values, dtype=np.uint8),
            **kwargs
        )

    # =========================================================================
    # Decoding
    # =========================================================================

    def byte_source(self) -> BufferByteSource:
        return BufferByteSource(self.byte_data.tobytes())

    def decode(self) -> list[DecodedFrame]:
        return list(MeterReader(self.byte_source()).frames())

    def readings(self) -> list[tuple[float, Reading]]:
        """(time of terminal byte, reading) for every decoded frame."""
        return [
            (self.frame_times(frame)[1], frame.result)
            for frame in self.decode() if frame.ok
        ]

    def frame_times(self, frame: DecodedFrame) -> tuple[float, float]:
        """Arrival times of the first and last byte of a frame."""
        if len(frame) == 0:
            return 0.0, 0.0
        return float(self.time_data[frame.start]), float(self.time_data[frame.end - 1])

    def to_annotations(self) -> list[Annotation]:
        """One annotation per frame: the reading, or why it was dropped."""
        annotations = []
        for frame in self.decode():
            start, end = self.frame_times(frame)
            result = frame.result
            if isinstance(result, Reading):
                text = [str(result), result.display]
                row = "readings"
            elif isinstance(result, PowerOn):
                text = [str(result), "ON"]
                row = "power"
            else:
                text = [result.message, type(result).__name__]
                row = "errors"
            annotations.append(Annotation(start=start, end=end, text=text, row=row))
        return annotations

    # =========================================================================
    # Persistence
    # =========================================================================

    def save(self, directory: Path = None) -> Path:
        if directory is None:
            directory = DEFAULT_CAPTURE_DIR

        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        safe_name = self._sanitize_filename(f"{self.meter}_{self.name}")
        pkl_path = directory / f"{safe_name}.pkl"
        vcd_path = directory / f"{safe_name}.vcd"

        if pkl_path.exists():
            ts = self.timestamp.strftime("%Y%m%d_%H%M%S")
            pkl_path = directory / f"{safe_name}_{ts}.pkl"
            vcd_path = directory / f"{safe_name}_{ts}.vcd"

        with open(pkl_path, 'wb') as f:
            pickle.dump(self, f, protocol=pickle.HIGHEST_PROTOCOL)

        self._save_vcd(vcd_path)
        logger.info("Saved %s to %s", self, pkl_path)
        return pkl_path

    def _save_vcd(self, filepath: Path) -> None:
        metadata = {
            "meter": self.meter,
            "port": self.port,
            "name": self.name,
            "info": self.info,
        }

        frames = self.decode()
        # Reading text changes when the terminal byte of its frame arrives
        frame_ends = {frame.end - 1: frame for frame in frames}

        with open(filepath, 'w') as f:
            with VCDWriter(f, timescale=VCD_TIMESCALE, date=str(self.timestamp),
                           comment=json.dumps(metadata)) as writer:

                meta_vars = {k: writer.register_var("Metadata", k, 'string')
                             for k in ["meter", "port", "name", "info"]}

                scope = self._sanitize_filename(self.meter)
                byte_label, slot_label, nibble_label, reading_label = DEFAULT_LABELS
                byte_var = writer.register_var(scope, byte_label, 'wire', size=8)
                slot_var = writer.register_var(scope, slot_label, 'wire', size=4)
                nibble_var = writer.register_var(scope, nibble_label, 'wire', size=4)
                reading_var = writer.register_var(scope, reading_label, 'string')

                for k, var in meta_vars.items():
                    writer.change(var, 0, self._vcd_string(metadata.get(k, "")))

                if len(self.time_data) == 0:
                    return

                ticks = ((self.time_data - self.time_data[0]) * _VCD_TICKS).astype(np.int64)

                for i, t in enumerate(ticks.tolist()):
                    value = int(self.byte_data[i])
                    writer.change(byte_var, t, value)
                    writer.change(slot_var, t, value >> 4)
                    writer.change(nibble_var, t, value & 0xF)

                    frame = frame_ends.get(i)
                    if frame is not None:
                        result = frame.result
                        text = str(result) if frame.ok else type(result).__name__
                        writer.change(reading_var, t, self._vcd_string(text))

    @staticmethod
    def _vcd_string(value) -> str:
        # VCD string values end at whitespace
        return re.sub(r"\s+", "_", str(value))

    @staticmethod
    def _sanitize_filename(name: str) -> str:
        s = re.sub(r'[^\w\-]', '_', name)
        return re.sub(r'_+', '_', s).strip('_') or "unnamed"

    @classmethod
    def load(cls, filepath: Path) -> "Capture":
        filepath = Path(filepath)
        with open(filepath, 'rb') as f:
            return pickle.load(f)
