"""
TP4000ZC Protocol Analysis Library

A toolkit for decoding the serial data stream of the TekPower TP4000ZC
digital multimeter.

Modules:
    decoder: Frame assembly and digit/attribute decoding
    reader: Stream reading (MeterReader, BufferByteSource)
    serial_port: pyvisa serial link to the meter
    capture: Byte stream recording, pickle/VCD export
    plotting: Reading timeline visualization
"""

from .decoder import (
    Annotation,
    Attribute,
    AttributeSet,
    ByteSource,
    DecodedDigit,
    EndOfStream,
    FrameAssembler,
    FrameError,
    FrameTooLong,
    Glyph,
    InvalidFraming,
    PowerOn,
    Reading,
    ShortFrame,
    SlotBuffer,
    StreamError,
    StreamTimeout,
    UnknownDigit,
    decode_attributes,
    decode_digit,
    decode_reading,
    lookup_segment,
    read_frame,
)

from .reader import (
    BufferByteSource,
    DecodedFrame,
    MeterReader,
    decode_bytes,
)

from .capture import Capture

from .plotting import (
    ReadingPlot,
    plot_capture,
    Style,
    DEFAULT_STYLE,
)

from .serial_port import MeterSerialPort

__all__ = [
    # Decoding
    'Annotation',
    'Attribute',
    'AttributeSet',
    'ByteSource',
    'DecodedDigit',
    'FrameAssembler',
    'Glyph',
    'PowerOn',
    'Reading',
    'SlotBuffer',
    'decode_attributes',
    'decode_digit',
    'decode_reading',
    'lookup_segment',
    'read_frame',
    # Errors
    'EndOfStream',
    'FrameError',
    'FrameTooLong',
    'InvalidFraming',
    'ShortFrame',
    'StreamError',
    'StreamTimeout',
    'UnknownDigit',
    # Reading
    'BufferByteSource',
    'DecodedFrame',
    'MeterReader',
    'decode_bytes',
    # Capture
    'Capture',
    # Plotting
    'ReadingPlot',
    'plot_capture',
    'Style',
    'DEFAULT_STYLE',
    # Hardware
    'MeterSerialPort',
]

__version__ = '0.1.0'
