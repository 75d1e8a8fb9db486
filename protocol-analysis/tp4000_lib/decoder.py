"""
TP4000ZC Protocol Decoder Module

The meter sends one packet per sample (roughly once a second, longer for
capacitance). Each byte carries its 1-based position in the packet in the
high nibble and a payload nibble in the low nibble. Slot 1 is sometimes left
out, so a packet is 13 or 14 bytes and ends with the slot 14 byte.

Slots 2-9 hold LCD segments for the four digits, two nibbles per digit.
Slots 1 and 10-14 hold mode attributes, four bits each.

Usage:
    from decoder import read_frame, decode_reading, SlotBuffer
    from reader import BufferByteSource

    source = BufferByteSource(bytes.fromhex("27 3D 42 57 69 75 80 95 A2 B0 C4 D0 E8"))
    frame = read_frame(source)
    if isinstance(frame, SlotBuffer):
        reading = decode_reading(frame)
        print(reading)            # 04.71 kilo Ohms (unknown E8)
"""

from dataclasses import dataclass
from enum import Enum, IntFlag
from types import MappingProxyType
from typing import Iterator, Optional, Protocol, Union, runtime_checkable


SLOT_COUNT = 14
TERMINAL_SLOT = 0xE
MIN_FRAME_BYTES = 13
MAX_FRAME_BYTES = 15
POWER_ON_BYTE = 0x00


# =============================================================================
# Annotation (for plotting)
# =============================================================================

@dataclass
class Annotation:
    """
    A display annotation for plotting.

    Inspired by sigrok's annotation model - provides start/end times
    and text variants (long to short) for different zoom levels.
    """
    start: float                       # Start time (seconds)
    end: float                         # End time (seconds)
    text: list[str]                    # Text variants, longest first
    row: str = "readings"              # Row/category for grouping

    @property
    def label(self) -> str:
        """Shortest text variant."""
        return self.text[-1] if self.text else ""

    @property
    def label_long(self) -> str:
        """Longest text variant."""
        return self.text[0] if self.text else ""


# =============================================================================
# Lookup Tables
# =============================================================================

class Glyph(Enum):
    """Digit positions that do not show a number."""
    OVER_RANGE = "L"
    BLANK = " "


# Segment bits: B=0x01 G=0x02 C=0x04 D=0x08 A=0x10 F=0x20 E=0x40
DIGIT_TABLE = MappingProxyType({
    0x7D: 0,
    0x05: 1,
    0x5B: 2,
    0x1F: 3,
    0x27: 4,
    0x3E: 5,
    0x7E: 6,
    0x15: 7,
    0x7F: 8,
    0x3F: 9,
    0x68: Glyph.OVER_RANGE,
    0x00: Glyph.BLANK,
})


class Attribute(IntFlag):
    """
    Mode flags, one bit each, in wire order.

    Bits 0-3 come from slot 1, bits 4-23 from slots 0xA-0xE.
    The UNKNOWN_* positions are reported by the meter but have no
    documented meaning.
    """
    UNKNOWN_11 = 1 << 0
    AUTO = 1 << 1
    DC = 1 << 2
    AC = 1 << 3
    DIODE = 1 << 4                     # A1
    KILO = 1 << 5
    NANO = 1 << 6
    MICRO = 1 << 7
    BEEP = 1 << 8                      # B1
    MEGA = 1 << 9
    PERCENT = 1 << 10
    MILLI = 1 << 11
    HOLD = 1 << 12                     # C1
    REL = 1 << 13
    OHMS = 1 << 14
    FARADS = 1 << 15
    UNKNOWN_D1 = 1 << 16
    HERTZ = 1 << 17
    VOLTS = 1 << 18
    AMPS = 1 << 19
    UNKNOWN_E1 = 1 << 20
    UNKNOWN_E2 = 1 << 21
    DEGREES_C = 1 << 22
    UNKNOWN_E8 = 1 << 23


ATTRIBUTE_BITS = 24

ATTRIBUTE_TABLE = (
    (Attribute.UNKNOWN_11, "(unknown 11)"),
    (Attribute.AUTO, "AUTO"),
    (Attribute.DC, "DC"),
    (Attribute.AC, "AC"),
    (Attribute.DIODE, "DIODE"),
    (Attribute.KILO, "kilo"),
    (Attribute.NANO, "nano"),
    (Attribute.MICRO, "micro"),
    (Attribute.BEEP, "beep"),
    (Attribute.MEGA, "mega"),
    (Attribute.PERCENT, "Percent"),
    (Attribute.MILLI, "mili"),
    (Attribute.HOLD, "HOLD"),
    (Attribute.REL, "REL"),
    (Attribute.OHMS, "Ohms"),
    (Attribute.FARADS, "Farads"),
    (Attribute.UNKNOWN_D1, "(unknown 0xD1)"),
    (Attribute.HERTZ, "Hertz"),
    (Attribute.VOLTS, "Volts"),
    (Attribute.AMPS, "Amps"),
    (Attribute.UNKNOWN_E1, "(unknown E1)"),
    (Attribute.UNKNOWN_E2, "(unknown E2)"),
    (Attribute.DEGREES_C, "DegreesC"),
    (Attribute.UNKNOWN_E8, "(unknown E8)"),
)

UNKNOWN_ATTRIBUTES = (
    Attribute.UNKNOWN_11 | Attribute.UNKNOWN_D1 | Attribute.UNKNOWN_E1
    | Attribute.UNKNOWN_E2 | Attribute.UNKNOWN_E8
)

PREFIX_TABLE = (
    (Attribute.NANO, "n", 1e-9),
    (Attribute.MICRO, "u", 1e-6),
    (Attribute.MILLI, "m", 1e-3),
    (Attribute.KILO, "k", 1e3),
    (Attribute.MEGA, "M", 1e6),
)

UNIT_TABLE = (
    (Attribute.VOLTS, "V"),
    (Attribute.AMPS, "A"),
    (Attribute.OHMS, "Ohm"),
    (Attribute.FARADS, "F"),
    (Attribute.HERTZ, "Hz"),
    (Attribute.PERCENT, "%"),
    (Attribute.DEGREES_C, "degC"),
)


# =============================================================================
# Signals and Errors
# =============================================================================

@dataclass(frozen=True)
class PowerOn:
    """The meter sent its single zero byte after being switched on."""
    discarded: int = 0                 # Bytes of the current frame thrown away

    def __str__(self) -> str:
        return "Meter powered on"


class FrameError(Exception):
    """Base class for errors that void a single frame."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidFraming(FrameError):
    """A byte whose position nibble is 0x0 or 0xF."""

    def __init__(self, value: int):
        self.value = value
        super().__init__(f"Invalid framing byte 0x{value:02X}")


class ShortFrame(FrameError):
    """The terminal byte arrived before enough bytes were accepted."""

    def __init__(self, accepted: int):
        self.accepted = accepted
        super().__init__(f"Only read {accepted} bytes of packet")


class FrameTooLong(FrameError):
    """No terminal byte within the attempt limit."""

    def __init__(self, accepted: int):
        self.accepted = accepted
        super().__init__(f"Read {accepted} bytes without a terminal byte")


class UnknownDigit(FrameError):
    """A segment code that is not in the digit table."""

    def __init__(self, code: int, position: Optional[int] = None):
        self.code = code
        self.position = position
        where = f" at digit {position}" if position is not None else ""
        super().__init__(f"Unknown digit code 0x{code:02X}{where}")


class StreamError(Exception):
    """The byte source failed. Fatal for the read loop."""


class EndOfStream(StreamError):
    """The byte source has no more data."""


class StreamTimeout(StreamError):
    """No byte arrived within the source's timeout."""


@runtime_checkable
class ByteSource(Protocol):
    """Anything that hands out one byte at a time."""
    def read_byte(self) -> int: ...


FrameResult = Union["SlotBuffer", PowerOn, FrameError]


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class SlotBuffer:
    """
    The 14 payload nibbles of one packet, stored 0-based.

    Wire slot n lives at index n - 1. Missing slots stay zero.
    """
    slots: tuple[int, ...]

    def __post_init__(self):
        if len(self.slots) != SLOT_COUNT:
            raise ValueError(f"Expected {SLOT_COUNT} slots, got {len(self.slots)}")
        for nibble in self.slots:
            if not 0 <= nibble <= 0xF:
                raise ValueError(f"Slot value {nibble!r} is not a nibble")

    def __len__(self) -> int:
        return SLOT_COUNT

    def __getitem__(self, index: int) -> int:
        return self.slots[index]

    def __iter__(self) -> Iterator[int]:
        return iter(self.slots)

    def wire_slot(self, index: int) -> int:
        """Payload of the byte whose framing nibble is ``index`` (1-14)."""
        if not 1 <= index <= SLOT_COUNT:
            raise IndexError(f"Wire slot {index} out of range 1-{SLOT_COUNT}")
        return self.slots[index - 1]

    def digit_nibbles(self, digit: int) -> tuple[int, int]:
        """(high, low) nibble pair for display digit 1-4."""
        if not 1 <= digit <= 4:
            raise IndexError(f"Digit {digit} out of range 1-4")
        first = 2 * digit - 1
        return self.slots[first], self.slots[first + 1]

    def attribute_nibbles(self) -> tuple[int, ...]:
        """Slots 1 and 10-14, low bits first."""
        return (self.slots[0],) + self.slots[9:]

    def as_hex_string(self) -> str:
        return " ".join(f"{i + 1:X}={n:X}" for i, n in enumerate(self.slots))


@dataclass(frozen=True)
class DecodedDigit:
    """One display digit and the flag carried in its first nibble."""
    value: Union[int, Glyph]
    flag: bool                         # Minus sign on digit 1, decimal point on 2-4
    code: int                          # Segment code it was decoded from

    @property
    def char(self) -> str:
        if isinstance(self.value, Glyph):
            return self.value.value
        return str(self.value)

    @property
    def is_number(self) -> bool:
        return not isinstance(self.value, Glyph)


@dataclass(frozen=True)
class AttributeSet:
    """The 24 mode flags of one reading."""
    bits: int = 0

    def __post_init__(self):
        object.__setattr__(self, "bits", int(self.bits))
        if not 0 <= self.bits < (1 << ATTRIBUTE_BITS):
            raise ValueError(f"Attribute bits 0x{self.bits:X} exceed {ATTRIBUTE_BITS} bits")

    def __contains__(self, flag: Attribute) -> bool:
        return bool(self.bits & flag)

    def __iter__(self) -> Iterator[Attribute]:
        return (flag for flag, _ in ATTRIBUTE_TABLE if self.bits & flag)

    def __len__(self) -> int:
        return bin(self.bits).count("1")

    def __int__(self) -> int:
        return self.bits

    @property
    def flags(self) -> Attribute:
        return Attribute(self.bits)

    def labels(self) -> list[str]:
        """Display labels of all set flags, in bit order."""
        return [label for flag, label in ATTRIBUTE_TABLE if self.bits & flag]

    @property
    def unknown(self) -> int:
        """Bits set in the reserved positions."""
        return self.bits & UNKNOWN_ATTRIBUTES


@dataclass(frozen=True)
class Reading:
    """Four decoded digits plus the attribute set of one packet."""
    digits: tuple[DecodedDigit, DecodedDigit, DecodedDigit, DecodedDigit]
    attributes: AttributeSet

    @property
    def negative(self) -> bool:
        return self.digits[0].flag

    @property
    def over_range(self) -> bool:
        return any(d.value is Glyph.OVER_RANGE for d in self.digits)

    @property
    def display(self) -> str:
        """Display text, e.g. '04.71' or '-1.234'."""
        text = ""
        for n, digit in enumerate(self.digits):
            if digit.flag:
                text += "-" if n == 0 else "."
            text += digit.char
        return text

    @property
    def value(self) -> Optional[float]:
        """
        Number as shown on the display.

        None if over range, blank, or not a single number (a blank between
        digits, or more than one decimal point).
        """
        if self.over_range:
            return None
        if not any(d.is_number for d in self.digits):
            return None
        body = self.display[1:] if self.negative else self.display
        body = body.strip(" ")
        if " " in body or body.count(".") > 1:
            return None
        value = float(body)
        return -value if self.negative else value

    @property
    def prefix(self) -> str:
        for flag, symbol, _ in PREFIX_TABLE:
            if flag in self.attributes:
                return symbol
        return ""

    @property
    def unit(self) -> str:
        for flag, symbol in UNIT_TABLE:
            if flag in self.attributes:
                return symbol
        return ""

    @property
    def scaled_value(self) -> Optional[float]:
        """Value in base units (kilo Ohms become Ohms)."""
        value = self.value
        if value is None:
            return None
        for flag, _, factor in PREFIX_TABLE:
            if flag in self.attributes:
                return value * factor
        return value

    def __str__(self) -> str:
        return " ".join([self.display] + self.attributes.labels())


# =============================================================================
# Frame Assembler
# =============================================================================

class FrameAssembler:
    """
    Pulls bytes from a source until one packet is complete.

    Every call starts from a zeroed buffer, so nothing carries over
    from one frame to the next.

    Args:
        min_bytes: Bytes needed before the terminal byte is accepted
        max_bytes: Bytes pulled before giving up on a frame

    Usage:
        assembler = FrameAssembler()
        result = assembler.read_frame(source)
    """

    def __init__(self, min_bytes: int = MIN_FRAME_BYTES, max_bytes: int = MAX_FRAME_BYTES):
        if min_bytes > max_bytes:
            raise ValueError(f"min_bytes {min_bytes} exceeds max_bytes {max_bytes}")
        self.min_bytes = min_bytes
        self.max_bytes = max_bytes

    def read_frame(self, source: ByteSource) -> FrameResult:
        """
        Read one frame from ``source``.

        Returns a SlotBuffer, a PowerOn signal, or the FrameError that
        voided the frame. EndOfStream and StreamError from the source
        are raised.
        """
        slots = [0] * SLOT_COUNT
        accepted = 0

        for _ in range(self.max_bytes):
            byte = source.read_byte()

            if byte == POWER_ON_BYTE:
                return PowerOn(discarded=accepted)

            index = (byte >> 4) & 0xF
            if index == 0 or index == 0xF:
                return InvalidFraming(byte)

            slots[index - 1] = byte & 0xF
            accepted += 1

            if index == TERMINAL_SLOT:
                if accepted < self.min_bytes:
                    return ShortFrame(accepted)
                return SlotBuffer(tuple(slots))

        return FrameTooLong(accepted)


_DEFAULT_ASSEMBLER = FrameAssembler()


def read_frame(source: ByteSource) -> FrameResult:
    """Read one frame with the default limits."""
    return _DEFAULT_ASSEMBLER.read_frame(source)


# =============================================================================
# Digit and Attribute Decoding
# =============================================================================

def lookup_segment(code: int) -> Union[int, Glyph, UnknownDigit]:
    """Map a segment code to its digit, or UnknownDigit."""
    try:
        return DIGIT_TABLE[code]
    except KeyError:
        return UnknownDigit(code)


def decode_digit(slot_high: int, slot_low: int) -> Union[DecodedDigit, UnknownDigit]:
    """
    Decode one digit from its two slot nibbles.

    The top bit of ``slot_high`` is the sign / decimal point flag and is
    not part of the segment code.
    """
    for nibble in (slot_high, slot_low):
        if not 0 <= nibble <= 0xF:
            raise ValueError(f"Slot value {nibble!r} is not a nibble")

    code = ((slot_high & 0x7) << 4) | slot_low
    value = lookup_segment(code)
    if isinstance(value, UnknownDigit):
        return value
    return DecodedDigit(value=value, flag=bool(slot_high & 0x8), code=code)


def decode_attributes(buffer: SlotBuffer) -> AttributeSet:
    """Gather the 24 attribute bits from slots 1 and 10-14."""
    bits = 0
    for bit in range(ATTRIBUTE_BITS):
        if bit < 4:
            slot = 0
        else:
            slot = (bit // 4) + 8
        if buffer[slot] & (1 << (bit % 4)):
            bits |= 1 << bit
    return AttributeSet(bits)


def decode_reading(buffer: SlotBuffer) -> Union[Reading, UnknownDigit]:
    """Decode all four digits and the attributes, or the first bad digit."""
    digits = []
    for n in range(1, 5):
        digit = decode_digit(*buffer.digit_nibbles(n))
        if isinstance(digit, UnknownDigit):
            return UnknownDigit(digit.code, position=n)
        digits.append(digit)

    return Reading(digits=tuple(digits), attributes=decode_attributes(buffer))
