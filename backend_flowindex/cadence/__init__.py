"""
Cadence source and value handling.

parser: declaration-level parsing of scripts and transactions.
values: JSON-Cadence decoding and tagged argument encoding.
"""

from backend_flowindex.cadence.parser import (
    ImportDeclaration,
    Parameter,
    Program,
    parse_program,
)
from backend_flowindex.cadence.values import (
    ArgumentValue,
    ConversionOptions,
    decode_json_cadence,
    encode_argument,
    to_argument_value,
)

__all__ = [
    "ArgumentValue",
    "ConversionOptions",
    "ImportDeclaration",
    "Parameter",
    "Program",
    "decode_json_cadence",
    "encode_argument",
    "parse_program",
    "to_argument_value",
]
