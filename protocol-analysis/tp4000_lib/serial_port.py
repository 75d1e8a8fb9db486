"""
TP4000ZC Serial Port

Opens the meter's RS232 link through pyvisa (pyvisa-py backend by default)
and hands out one byte at a time for the frame assembler.

Usage:
    from serial_port import MeterSerialPort
    from reader import MeterReader

    with MeterSerialPort("/dev/ttyUSB0") as port:
        for reading in MeterReader(port).readings():
            print(reading)
"""

import logging
import re

import pyvisa
from pyvisa.constants import BufferOperation, Parity, SerialTermination, StatusCode, StopBits
from pyvisa.errors import VisaIOError

from .constants import (
    DEFAULT_BAUD_RATE,
    DEFAULT_DATA_BITS,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_VISA_BACKEND,
)
from .decoder import StreamError, StreamTimeout

logger = logging.getLogger(__name__)


def resource_name(port: str) -> str:
    """
    Map a device name to a VISA resource string.

    '/dev/ttyUSB0' -> 'ASRL/dev/ttyUSB0::INSTR', 'COM3' -> 'ASRL3::INSTR'.
    Strings that already look like VISA resources are returned unchanged.
    """
    if port.upper().startswith("ASRL"):
        return port
    match = re.fullmatch(r"COM(\d+)", port, re.IGNORECASE)
    if match:
        return f"ASRL{match.group(1)}::INSTR"
    return f"ASRL{port}::INSTR"


class MeterSerialPort:
    """Serial link to the meter, 8N1 at 2400 baud"""

    def __init__(
        self,
        port: str = DEFAULT_PORT,
        baud_rate: int = DEFAULT_BAUD_RATE,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        backend: str = DEFAULT_VISA_BACKEND,
    ):
        self.port = port
        self.resource_string = resource_name(port)
        self.rm = pyvisa.ResourceManager(backend)

        try:
            self.resource = self.rm.open_resource(self.resource_string)
        except VisaIOError as exc:
            self.rm.close()
            raise StreamError(f"Couldn't open serial port \"{port}\": {exc}") from exc

        try:
            # Raw bytes: no termination character on either side
            self.resource.baud_rate = baud_rate
            self.resource.data_bits = DEFAULT_DATA_BITS
            self.resource.parity = Parity.none
            self.resource.stop_bits = StopBits.one
            self.resource.timeout = timeout_ms
            self.resource.end_input = SerialTermination.none
            self.resource.read_termination = None

            # Drop whatever piled up before we started listening
            self.resource.flush(BufferOperation.discard_read_buffer)
        except VisaIOError as exc:
            self.resource.close()
            self.rm.close()
            raise StreamError(f"Couldn't configure serial port \"{port}\": {exc}") from exc

        self.bytes_read = 0
        self._closed = False
        logger.info("Listening on %s at %d baud", self.resource_string, baud_rate)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        if self._closed:
            return
        self._closed = True
        self.resource.close()
        self.rm.close()
        logger.info("Connection to %s closed", self.resource_string)

    @property
    def timeout_ms(self) -> int:
        return self.resource.timeout

    @timeout_ms.setter
    def timeout_ms(self, value: int):
        self.resource.timeout = value

    def read_byte(self) -> int:
        """Block until one byte arrives."""
        if self._closed:
            raise StreamError(f"Serial port {self.port} is closed")

        try:
            data = self.resource.read_bytes(1)
        except VisaIOError as exc:
            if exc.error_code == StatusCode.error_timeout:
                raise StreamTimeout(
                    f"No data from {self.port} within {self.resource.timeout} ms"
                ) from exc
            raise StreamError(f"Read from {self.port} failed: {exc}") from exc

        if len(data) != 1:
            raise StreamError(f"Expected 1 byte from {self.port}, got {len(data)}")

        self.bytes_read += 1
        return data[0]
