from typing import BinaryIO

from bitarray import bitarray
from bitarray.util import ba2int, int2ba

BLOCK = 4096 # bytes pulled from / pushed to the underlying file at a time
END_OF_STREAM = -1 # never a valid read_bits() value


class BitInputStream: # Reads big-endian bit fields from a binary file object
    def __init__(self, source: BinaryIO):
        self.source = source
        self.bits_read = 0
        self._buffer = bitarray(endian="big")
        self._pos = 0 # index of the next unread bit in _buffer

    def _fill(self, needed: int) -> bool:
        # Drop consumed bits, then pull blocks until `needed` bits are available
        if self._pos:
            del self._buffer[:self._pos]
            self._pos = 0
        while len(self._buffer) < needed:
            chunk = self.source.read(BLOCK)
            if not chunk:
                return False
            self._buffer.frombytes(chunk)
        return True

    def read_bits(self, n: int) -> int:
        """
        Read n bits, most significant first
        Returns END_OF_STREAM if fewer than n bits remain
        """
        if len(self._buffer) - self._pos < n and not self._fill(n):
            return END_OF_STREAM
        if n == 1:
            value = self._buffer[self._pos]
        else:
            value = ba2int(self._buffer[self._pos:self._pos + n])
        self._pos += n
        self.bits_read += n
        return value

    def reset(self) -> None:
        # bits_read counts from the last rewind
        self.source.seek(0)
        self.bits_read = 0
        self._buffer = bitarray(endian="big")
        self._pos = 0


class BitOutputStream: # Writes big-endian bit fields to a binary file object
    def __init__(self, sink: BinaryIO):
        self.sink = sink
        self.bits_written = 0
        self.closed = False
        self._buffer = bitarray(endian="big")

    def write_bits(self, n: int, value: int) -> None:
        # Only the low n bits of value are written
        if n == 0:
            return
        self.write_code(int2ba(value & ((1 << n) - 1), length=n, endian="big"))

    def write_code(self, code: bitarray) -> None:
        if self.closed:
            raise ValueError("write to closed BitOutputStream")
        self._buffer.extend(code)
        self.bits_written += len(code)
        if len(self._buffer) >= BLOCK * 8:
            self._flush_whole_bytes()

    def _flush_whole_bytes(self) -> None:
        whole = len(self._buffer) - len(self._buffer) % 8
        self.sink.write(self._buffer[:whole].tobytes())
        del self._buffer[:whole]

    def flush(self) -> None:
        # Whole bytes only, a trailing partial byte stays buffered
        if self.closed:
            return
        self._flush_whole_bytes()
        self.sink.flush()

    def close(self) -> None:
        """
        Zero-pad the final partial byte and hand everything to the sink
        The sink itself stays open, its owner closes it
        """
        if self.closed:
            return
        self._buffer.fill()
        self.sink.write(self._buffer.tobytes())
        self._buffer = bitarray(endian="big")
        self.sink.flush()
        self.closed = True
