"""
Import extraction: address-qualified contract dependencies of a script.

Only imports bound to an address location (`import Foo from 0x01`) are
dependencies on deployed contracts; string and identifier locations refer
to local files or built-ins and are skipped.
"""

from __future__ import annotations

from backend_flowindex.cadence.parser import parse_program
from backend_flowindex.flow_listener.models import Import


def get_address_imports(code: bytes | str) -> list[Import]:
    """
    Return one Import per identifier of every address import, in source order.

    Raises ParseError on malformed source. Holds no state between calls.
    """
    program = parse_program(code)
    deps: list[Import] = []
    for declaration in program.imports:
        if not declaration.is_address_import or declaration.address is None:
            continue
        for name in declaration.identifiers:
            deps.append(Import(address=declaration.address, name=name))
    return deps
