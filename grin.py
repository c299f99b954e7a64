"""
GRIN container: magic number, serialized Huffman tree, Huffman coded payload.

    python grin.py encode notes.txt notes.grin
    python grin.py decode notes.grin notes.txt
"""

import argparse
import io
import logging
import os
import shutil
import sys
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, Iterator, List, Optional

from bitio import BitInputStream, BitOutputStream
from huffman import (
    EOF_SYMBOL,
    FormatError,
    GrinError,
    TruncationError,
    build_huffman_tree,
    decode_stream,
    deserialize_tree,
    encode_stream,
    leaves,
    serialize_tree,
    tree_height,
)

logger = logging.getLogger(__name__)

MAGIC = 0x736
MAGIC_BITS = 32
READ_CHUNK = 64 * 1024


def read_chunks(f: BinaryIO, size: int = READ_CHUNK) -> Iterator[bytes]:
    while True:
        chunk = f.read(size)
        if not chunk:
            return
        yield chunk


def count_frequencies(chunks: Iterable[bytes]) -> Dict[int, int]:
    """
    Occurrence count of every byte value in chunks, plus EOF_SYMBOL with count 1
    """
    ft: Dict[int, int] = {}
    for chunk in chunks:
        for b in chunk:
            ft[b] = ft.get(b, 0) + 1
    ft[EOF_SYMBOL] = 1
    return ft


def build_frequency_table(path) -> Dict[int, int]:
    with open(path, "rb") as f:
        ft = count_frequencies(read_chunks(f))
    logger.debug("%s: %d distinct symbols including EOF", path, len(ft))
    return ft


def _match_default_mode(tmp_name, target: Path) -> None:
    # mkstemp creates 0600 files; give the output the mode open(path, "wb") would
    if target.exists():
        shutil.copymode(target, tmp_name)
    else:
        umask = os.umask(0)
        os.umask(umask)
        os.chmod(tmp_name, 0o666 & ~umask)


@contextmanager
def atomic_output(path) -> Iterator[BinaryIO]:
    """
    Yields a temporary file next to path and moves it over path only if the
    block finishes without an exception. Otherwise the temporary file is removed
    """
    target = Path(path)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            yield f
        _match_default_mode(tmp_name, target)
        os.replace(tmp_name, target)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _encode_to(src: BinaryIO, frequency_table: Dict[int, int], dst: BinaryIO) -> None:
    root = build_huffman_tree(frequency_table)
    logger.debug("tree: %d leaves, height %d", len(leaves(root)), tree_height(root))

    out = BitOutputStream(dst)
    out.write_bits(MAGIC, MAGIC_BITS)
    serialize_tree(root, out)
    header_bits = out.bits_written
    encode_stream(root, read_chunks(src), out)
    out.flush()
    logger.debug("header %d bits, payload %d bits", header_bits, out.bits_written - header_bits)


def _decode_from(src: BinaryIO, dst: BinaryIO) -> int:
    bits = BitInputStream(src)
    magic = bits.read_bits(MAGIC_BITS)
    if magic is None:
        raise FormatError("input is shorter than the GRIN magic number")
    if magic != MAGIC:
        raise FormatError(f"bad magic number 0x{magic:08x}, expected 0x{MAGIC:08x}")

    root = deserialize_tree(bits)
    logger.debug("tree: %d leaves, header ended at bit %d", len(leaves(root)), bits.bits_read)
    return decode_stream(root, bits, dst)


def encode(input_path, output_path) -> None:
    """
    Compresses input_path into a GRIN file at output_path.
    Reads the input twice: once to count bytes, once to emit codes
    """
    frequency_table = build_frequency_table(input_path)
    with open(input_path, "rb") as src, atomic_output(output_path) as dst:
        _encode_to(src, frequency_table, dst)
    logger.info("encoded %s -> %s", input_path, output_path)


def decode(input_path, output_path) -> None:
    """
    Restores the original bytes of the GRIN file at input_path into output_path.
    Raises FormatError on a bad magic number or tree, TruncationError on a cut payload
    """
    with open(input_path, "rb") as src, atomic_output(output_path) as dst:
        n = _decode_from(src, dst)
    logger.info("decoded %s -> %s (%d bytes)", input_path, output_path, n)


def encode_bytes(data: bytes) -> bytes:
    frequency_table = count_frequencies([data])
    dst = io.BytesIO()
    _encode_to(io.BytesIO(data), frequency_table, dst)
    return dst.getvalue()


def decode_bytes(blob: bytes) -> bytes:
    dst = io.BytesIO()
    _decode_from(io.BytesIO(blob), dst)
    return dst.getvalue()


# Command line

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="grin", description="Static Huffman compression into GRIN files")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log tree and bit counts")
    sub = ap.add_subparsers(dest="command", metavar="{encode,decode}")
    sub.required = True

    enc = sub.add_parser("encode", help="Compress <infile> into the GRIN file <outfile>")
    enc.add_argument("infile")
    enc.add_argument("outfile")

    dec = sub.add_parser("decode", help="Restore the GRIN file <infile> into <outfile>")
    dec.add_argument("infile")
    dec.add_argument("outfile")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    operation = encode if args.command == "encode" else decode
    try:
        operation(args.infile, args.outfile)
    except (GrinError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
