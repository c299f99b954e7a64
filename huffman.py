import heapq
from itertools import count
from typing import BinaryIO, Dict, Iterable, List, Union

from bitio import BitInputStream, BitOutputStream

EOF_SYMBOL = 256 # reserved end-of-stream symbol, never a real byte
SYMBOL_BITS = 9 # enough to hold 0..256
MAX_DEPTH = EOF_SYMBOL # tallest possible tree over 257 leaves
INTERNAL_KEY = -1 # orders internal nodes before leaves of equal frequency


class GrinError(Exception):
    """Base class for GRIN container failures."""


class FormatError(GrinError, ValueError):
    """The input is not a well-formed GRIN stream."""


class TruncationError(GrinError, ValueError):
    """The payload ended before the EOF code was read."""


class Leaf: # Leaf node for Huffman tree
    __slots__ = ("symbol", "frequency")

    def __init__(self, symbol: int, frequency: int = 1):
        self.symbol = symbol # 0..255 for bytes, EOF_SYMBOL for end of stream
        self.frequency = frequency

    def __repr__(self):
        return f"Leaf({self.symbol}, {self.frequency})"


class Internal: # Internal node, frequency is always the sum of its children
    __slots__ = ("left", "right", "frequency")

    def __init__(self, left: "Node", right: "Node"):
        self.left = left
        self.right = right
        self.frequency = left.frequency + right.frequency

    def __repr__(self):
        return f"Internal({self.left!r}, {self.right!r})"


Node = Union[Leaf, Internal]


def build_huffman_tree(frequency_table: Dict[int, int]) -> Node: # frequency_table: dict of symbol -> frequency, must include EOF_SYMBOL
    if EOF_SYMBOL not in frequency_table:
        raise ValueError("frequency table is missing the EOF symbol")
    for symbol, frequency in frequency_table.items():
        if not 0 <= symbol <= EOF_SYMBOL:
            raise ValueError(f"symbol {symbol} out of range")
        if frequency < 0:
            raise ValueError(f"negative frequency for symbol {symbol}")

    # (frequency, order key, creation order, node); the tuple is a strict total order
    sequence = count()
    priority_queue = [
        (frequency, symbol, next(sequence), Leaf(symbol, frequency))
        for symbol, frequency in frequency_table.items()
    ]
    heapq.heapify(priority_queue)

    while len(priority_queue) > 1:
        left = heapq.heappop(priority_queue)[3]
        right = heapq.heappop(priority_queue)[3]
        # a leaf always goes left of an internal node
        if isinstance(left, Internal) and isinstance(right, Leaf):
            left, right = right, left
        merged_node = Internal(left, right)
        heapq.heappush(priority_queue, (merged_node.frequency, INTERNAL_KEY, next(sequence), merged_node))

    return priority_queue[0][3] # root of the tree


def generate_huffman_codes(root: Node) -> Dict[int, str]: # root: root of the Huffman tree
    """
    Maps every leaf symbol to its root-to-leaf path, '0' for left and '1' for right.
    A tree that is a single leaf gives that symbol the empty code
    """
    def codes_below(node: Node, prefix: str) -> Dict[int, str]:
        if isinstance(node, Leaf):
            return {node.symbol: prefix}
        codes = codes_below(node.left, prefix + '0')
        codes.update(codes_below(node.right, prefix + '1'))
        return codes

    return codes_below(root, '')


def leaves(root: Node) -> List[int]:
    """Leaf symbols in preorder."""
    if isinstance(root, Leaf):
        return [root.symbol]
    return leaves(root.left) + leaves(root.right)


def tree_height(root: Node) -> int:
    if isinstance(root, Leaf):
        return 0
    return 1 + max(tree_height(root.left), tree_height(root.right))


# Tree serialization

def serialize_tree(root: Node, out: BitOutputStream) -> None:
    """
    Preorder: an internal node is a 1 bit followed by its left then right subtree,
    a leaf is a 0 bit followed by its symbol in SYMBOL_BITS bits
    """
    if isinstance(root, Leaf):
        out.write_bit(0)
        out.write_bits(root.symbol, SYMBOL_BITS)
    else:
        out.write_bit(1)
        serialize_tree(root.left, out)
        serialize_tree(root.right, out)


def deserialize_tree(bits: BitInputStream) -> Node:
    """
    Reads a tree written by serialize_tree. Leaves get frequency 1.
    Raises FormatError if the bits do not describe a valid tree
    """
    seen = set()

    def read_node(depth: int) -> Node:
        if depth > MAX_DEPTH:
            raise FormatError(f"tree deeper than {MAX_DEPTH} levels")
        bit = bits.read_bit()
        if bit is None:
            raise FormatError("stream ended inside the tree header")
        if bit == 1:
            left = read_node(depth + 1)
            right = read_node(depth + 1)
            return Internal(left, right)
        symbol = bits.read_bits(SYMBOL_BITS)
        if symbol is None:
            raise FormatError("stream ended inside a leaf symbol")
        if symbol > EOF_SYMBOL:
            raise FormatError(f"invalid leaf symbol {symbol}")
        if symbol in seen:
            raise FormatError(f"symbol {symbol} appears in more than one leaf")
        seen.add(symbol)
        return Leaf(symbol, 1)

    root = read_node(0)
    if EOF_SYMBOL not in seen:
        raise FormatError("tree has no EOF leaf")
    return root


# Streaming encode / decode

def encode_stream(root: Node, chunks: Iterable[bytes], out: BitOutputStream) -> None:
    """
    Writes the code of every byte in chunks, in order, then the EOF code
    """
    code_map = generate_huffman_codes(root)
    # bit values per symbol so the inner loop avoids converting characters
    code_bits = {symbol: [1 if ch == '1' else 0 for ch in code] for symbol, code in code_map.items()}

    for chunk in chunks:
        for byte in chunk:
            bits = code_bits.get(byte)
            if bits is None:
                raise ValueError(f"no Huffman code for byte {byte}")
            for bit in bits:
                out.write_bit(bit)

    for bit in code_bits[EOF_SYMBOL]:
        out.write_bit(bit)


def decode_stream(root: Node, bits: BitInputStream, out: BinaryIO, block_size: int = 64 * 1024) -> int:
    """
    Walks the tree one bit at a time and writes each decoded byte to out.
    Stops at the EOF leaf, which is not written. Returns the number of bytes written.
    Raises TruncationError if bits run out first
    """
    if isinstance(root, Leaf) and root.symbol != EOF_SYMBOL:
        raise ValueError("a single-leaf tree must hold the EOF symbol")

    decoded = bytearray()
    written = 0
    current_node = root
    while True:
        if isinstance(current_node, Leaf): # reached a leaf
            if current_node.symbol == EOF_SYMBOL:
                break
            decoded.append(current_node.symbol)
            current_node = root
            if len(decoded) >= block_size:
                out.write(decoded)
                written += len(decoded)
                decoded = bytearray()
            continue

        bit = bits.read_bit()
        if bit is None:
            out.write(decoded)
            raise TruncationError(f"payload ended after {written + len(decoded)} bytes without an EOF code")
        current_node = current_node.left if bit == 0 else current_node.right

    out.write(decoded)
    return written + len(decoded)
