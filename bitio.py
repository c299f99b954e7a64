from typing import BinaryIO, Optional

CHUNK_SIZE = 64 * 1024
MAX_BITS = 32


def _check_width(n: int) -> None:
    if not 1 <= n <= MAX_BITS:
        raise ValueError(f"bit width must be between 1 and {MAX_BITS}, got {n}")


class BitInputStream: # reads bits MSB first from a binary file object
    def __init__(self, fileobj: BinaryIO):
        self.fileobj = fileobj
        self.buffer = b""
        self.pos = 0 # index of the current byte in buffer
        self.current = 0 # byte being consumed
        self.remaining = 0 # unread bits left in current
        self.bits_read = 0

    def _next_byte(self) -> bool:
        if self.pos >= len(self.buffer):
            self.buffer = self.fileobj.read(CHUNK_SIZE)
            self.pos = 0
            if not self.buffer:
                return False
        self.current = self.buffer[self.pos]
        self.pos += 1
        self.remaining = 8
        return True

    def read_bit(self) -> Optional[int]:
        """
        Returns the next bit (0 or 1), or None once the stream is exhausted
        """
        if self.remaining == 0 and not self._next_byte():
            return None
        self.remaining -= 1
        self.bits_read += 1
        return (self.current >> self.remaining) & 1

    def read_bits(self, n: int) -> Optional[int]:
        """
        Reads n bits (1..32) combined most-significant first.
        Returns None if fewer than n bits are left
        """
        _check_width(n)
        value = 0
        for _ in range(n):
            bit = self.read_bit()
            if bit is None:
                return None
            value = (value << 1) | bit
        return value

    def close(self) -> None:
        self.fileobj.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class BitOutputStream: # packs bits MSB first into a binary file object
    def __init__(self, fileobj: BinaryIO):
        self.fileobj = fileobj
        self.out = bytearray() # completed bytes not yet written
        self.acc = 0
        self.acc_bits = 0
        self.bits_written = 0

    def write_bit(self, bit: int) -> None:
        if bit not in (0, 1):
            raise ValueError(f"bit must be 0 or 1, got {bit!r}")
        self.acc = (self.acc << 1) | bit
        self.acc_bits += 1
        self.bits_written += 1
        if self.acc_bits == 8:
            self.out.append(self.acc)
            self.acc = 0
            self.acc_bits = 0
            if len(self.out) >= CHUNK_SIZE:
                self.fileobj.write(self.out)
                self.out = bytearray()

    def write_bits(self, value: int, n: int) -> None:
        """
        Writes the low n bits (1..32) of value, most-significant first
        """
        _check_width(n)
        for i in range(n - 1, -1, -1):
            self.write_bit((value >> i) & 1)

    def flush(self) -> None:
        """
        Writes every buffered bit. A partial byte is padded with 0 bits
        in its low-order positions, so only call this once writing is done
        """
        if self.acc_bits != 0:
            pad_bits = 8 - self.acc_bits
            self.out.append((self.acc << pad_bits) & 0xFF)
            self.acc = 0
            self.acc_bits = 0
        if self.out:
            self.fileobj.write(self.out)
            self.out = bytearray()
        self.fileobj.flush()

    def close(self) -> None:
        try:
            self.flush()
        finally:
            self.fileobj.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
