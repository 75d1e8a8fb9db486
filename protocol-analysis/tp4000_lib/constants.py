"""
Shared defaults for the serial link and for capture files.
"""

from pathlib import Path

# Serial link: 2400 baud, 8 data bits, no parity, 1 stop bit
DEFAULT_PORT = "/dev/ttyS0"
DEFAULT_BAUD_RATE = 2400
DEFAULT_DATA_BITS = 8

# Capacitance readings can take up to ~15 s per packet
DEFAULT_TIMEOUT_MS = 20000

# pyvisa-py backend, no NI-VISA install needed
DEFAULT_VISA_BACKEND = "@py"

DEFAULT_METER = "TP4000ZC"
DEFAULT_CAPTURE_DIR = Path(__file__).parent.parent / "meter_captures"

# Seconds per byte at 2400 8N1 (10 bits on the wire)
BYTE_INTERVAL = 10 / DEFAULT_BAUD_RATE

VCD_TIMESCALE = "1 us"
DEFAULT_LABELS = ["byte", "slot", "nibble", "reading"]
