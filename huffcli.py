"""
Command line front end for the Huffman compressor

How to run:
  huff compress notes.txt notes.hf
  huff decompress notes.hf notes.txt --debug
"""

import argparse
import logging
import sys
from typing import List, Optional

import huffman as huff
from bitio import BitInputStream, BitOutputStream


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="huff", description="Static Huffman compressor")
    sub = ap.add_subparsers(dest="mode", required=True)
    for mode, help_text in (("compress", "Compress INPUT into OUTPUT"),
                            ("decompress", "Decompress INPUT into OUTPUT")):
        p = sub.add_parser(mode, help=help_text)
        p.add_argument("input_file")
        p.add_argument("output_file")
        p.add_argument("--debug", action="store_true", help="Log code table and bit counts")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = huff.HuffmanConfig(debug=args.debug)
    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    try:
        with open(args.input_file, "rb") as fin, open(args.output_file, "wb") as fout:
            bit_in = BitInputStream(fin)
            bit_out = BitOutputStream(fout)
            if args.mode == "compress":
                huff.compress(bit_in, bit_out, config)
            else:
                huff.decompress(bit_in, bit_out, config)
    except (huff.HuffmanFormatError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(f"{args.mode}: read {bit_in.bits_read} bits, wrote {bit_out.bits_written} bits")
    if bit_in.bits_read:
        print(f"Ratio (written/read): {bit_out.bits_written / bit_in.bits_read:.3f}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
