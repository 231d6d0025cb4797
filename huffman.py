import heapq
import io
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from bitarray import bitarray

from bitio import END_OF_STREAM, BitInputStream, BitOutputStream

logger = logging.getLogger(__name__)

BITS_PER_WORD = 8
BITS_PER_INT = 32
ALPH_SIZE = 1 << BITS_PER_WORD
PSEUDO_EOF = ALPH_SIZE # reserved symbol marking the end of the payload
HUFF_NUMBER = 0xFACE8200
HUFF_TREE = HUFF_NUMBER | 1 # magic header of a tree-carrying stream


class HuffmanFormatError(Exception):
    """Compressed stream is not ours, or is corrupt / truncated"""


@dataclass
class HuffmanConfig:
    debug: bool = False


@dataclass
class CompressionStats:
    symbols: int
    unique_symbols: int
    leaves: int
    header_bits: int
    body_bits: int
    max_code_length: int


class HuffmanNode: # Node for Huffman tree
    def __init__(self, symbol, weight, left=None, right=None, rank=0):
        self.symbol = symbol # 0-256, or None for internal nodes
        self.weight = weight
        self.left = left
        self.right = right
        self.rank = rank # creation order, breaks weight ties

    def is_leaf(self):
        return self.left is None and self.right is None

    def __lt__(self, other):
        # heapq keeps the min-heap on (weight, rank) so equal weights pop in creation order
        return (self.weight, self.rank) < (other.weight, other.rank)


def count_frequencies(bit_in: BitInputStream) -> List[int]:
    counts = [0] * ALPH_SIZE
    while True:
        value = bit_in.read_bits(BITS_PER_WORD)
        if value == END_OF_STREAM:
            break
        counts[value] += 1
    return counts


def build_huffman_tree(frequencies: List[int]) -> HuffmanNode:
    """
    Greedy merge of the two lightest nodes until one is left
    Leaves get ranks in ascending symbol order, PSEUDO_EOF last, then merged nodes
    """
    priority_queue = []
    rank = 0
    for symbol, frequency in enumerate(frequencies):
        if frequency > 0:
            priority_queue.append(HuffmanNode(symbol, frequency, rank=rank))
            rank += 1
    priority_queue.append(HuffmanNode(PSEUDO_EOF, 1, rank=rank)) # always present, even for empty input
    rank += 1
    heapq.heapify(priority_queue)

    while len(priority_queue) > 1:
        left = heapq.heappop(priority_queue)
        right = heapq.heappop(priority_queue)
        merged = HuffmanNode(None, left.weight + right.weight, left, right, rank=rank)
        rank += 1
        heapq.heappush(priority_queue, merged)

    return priority_queue[0] # root of the tree


def write_tree(root: HuffmanNode, bit_out: BitOutputStream) -> None:
    # Pre-order: 0 for internal, 1 + 9-bit symbol for a leaf
    stack = [root]
    while stack:
        node = stack.pop()
        if node.is_leaf():
            bit_out.write_bits(1, 1)
            bit_out.write_bits(BITS_PER_WORD + 1, node.symbol)
        else:
            bit_out.write_bits(1, 0)
            stack.append(node.right) # right is pushed first so left is written first
            stack.append(node.left)


def read_tree(bit_in: BitInputStream) -> HuffmanNode:
    """
    Rebuild the tree written by write_tree
    Each stack entry is an internal node still waiting for a child
    """
    root = None
    pending: List[HuffmanNode] = []
    while True:
        bit = bit_in.read_bits(1)
        if bit == END_OF_STREAM:
            raise HuffmanFormatError("stream ended inside the tree header")
        if bit == 0:
            node = HuffmanNode(None, 0)
        else:
            value = bit_in.read_bits(BITS_PER_WORD + 1)
            if value == END_OF_STREAM:
                raise HuffmanFormatError("stream ended inside a tree leaf")
            if value > PSEUDO_EOF:
                raise HuffmanFormatError(f"tree leaf holds invalid symbol {value}")
            node = HuffmanNode(value, 0)

        if root is None:
            root = node
        else:
            parent = pending[-1]
            if parent.left is None:
                parent.left = node
            else:
                parent.right = node
                pending.pop()

        if node.symbol is None: # internal, children still to come
            pending.append(node)
        if not pending:
            return root


def generate_huffman_codes(root: HuffmanNode) -> Dict[int, bitarray]:
    codes: Dict[int, bitarray] = {}
    stack = [(root, bitarray(endian="big"))]
    while stack:
        node, path = stack.pop()
        # Leaf node -> assign code
        if node.is_leaf():
            codes[node.symbol] = path
            continue
        stack.append((node.right, path + bitarray("1", endian="big")))
        stack.append((node.left, path + bitarray("0", endian="big")))
    return codes


def compress(bit_in: BitInputStream, bit_out: BitOutputStream,
             config: Optional[HuffmanConfig] = None) -> CompressionStats:
    config = config or HuffmanConfig()

    frequencies = count_frequencies(bit_in)
    root = build_huffman_tree(frequencies)
    bit_in.reset()

    start_bits = bit_out.bits_written
    bit_out.write_bits(BITS_PER_INT, HUFF_TREE)
    write_tree(root, bit_out)
    header_bits = bit_out.bits_written - start_bits

    codes = generate_huffman_codes(root)
    if config.debug:
        for symbol, frequency in enumerate(frequencies):
            if frequency:
                logger.debug("symbol %d count %d code %s", symbol, frequency, codes[symbol].to01())
        logger.debug("PSEUDO_EOF code %s", codes[PSEUDO_EOF].to01())

    symbols = 0
    while True:
        value = bit_in.read_bits(BITS_PER_WORD)
        if value == END_OF_STREAM:
            break
        bit_out.write_code(codes[value])
        symbols += 1
    bit_out.write_code(codes[PSEUDO_EOF]) # empty for a lone PSEUDO_EOF leaf
    body_bits = bit_out.bits_written - start_bits - header_bits
    bit_out.close()

    if config.debug:
        logger.debug("header %d bits, body %d bits for %d symbols", header_bits, body_bits, symbols)

    return CompressionStats(
        symbols=symbols,
        unique_symbols=sum(1 for f in frequencies if f > 0),
        leaves=len(codes),
        header_bits=header_bits,
        body_bits=body_bits,
        max_code_length=max(len(code) for code in codes.values()),
    )


def decompress(bit_in: BitInputStream, bit_out: BitOutputStream,
               config: Optional[HuffmanConfig] = None) -> int:
    config = config or HuffmanConfig()

    magic = bit_in.read_bits(BITS_PER_INT)
    if magic != HUFF_TREE:
        if magic == END_OF_STREAM:
            raise HuffmanFormatError("stream too short for the magic header")
        raise HuffmanFormatError(f"invalid magic number 0x{magic:08x}")

    root = read_tree(bit_in)
    if config.debug:
        logger.debug("read tree with %d leaves", len(generate_huffman_codes(root)))

    # A lone leaf has a zero-length code, so there is nothing to walk
    if root.is_leaf():
        if root.symbol != PSEUDO_EOF:
            raise HuffmanFormatError(f"tree is a single leaf {root.symbol} without PSEUDO_EOF")
        bit_out.close()
        return 0

    symbols = 0
    current = root
    while True:
        bit = bit_in.read_bits(1)
        if bit == END_OF_STREAM:
            bit_out.flush() # symbols decoded so far stay in the sink
            raise HuffmanFormatError("stream ended before PSEUDO_EOF")
        current = current.left if bit == 0 else current.right
        if current.is_leaf():
            if current.symbol == PSEUDO_EOF:
                break
            bit_out.write_bits(BITS_PER_WORD, current.symbol)
            symbols += 1
            current = root # reset to the root for the next symbol

    bit_out.close()
    if config.debug:
        logger.debug("decoded %d symbols from %d bits", symbols, bit_in.bits_read)
    return symbols


def compress_bytes(data: bytes, config: Optional[HuffmanConfig] = None) -> bytes:
    sink = io.BytesIO()
    compress(BitInputStream(io.BytesIO(data)), BitOutputStream(sink), config)
    return sink.getvalue()


def decompress_bytes(blob: bytes, config: Optional[HuffmanConfig] = None) -> bytes:
    sink = io.BytesIO()
    decompress(BitInputStream(io.BytesIO(blob)), BitOutputStream(sink), config)
    return sink.getvalue()
