"""
Flow blockchain listener package.

Binds script arguments, extracts contract imports, normalizes executed
transactions into role-annotated records and streams block results from
an access node, catching up on history or tailing the sealed head.
"""

from backend_flowindex.flow_listener.arguments import (
    bind_arguments,
    declaration_info,
    get_parameter_list,
    parse_arguments,
)
from backend_flowindex.flow_listener.blocks import AccessClient, BlockAssembler
from backend_flowindex.flow_listener.imports import get_address_imports
from backend_flowindex.flow_listener.models import (
    BlockResult,
    BoundArgumentList,
    Import,
    NormalizedTransaction,
)
from backend_flowindex.flow_listener.normalizer import create_transaction
from backend_flowindex.flow_listener.stream import StreamController, StreamPhase

__all__ = [
    "AccessClient",
    "BlockAssembler",
    "BlockResult",
    "BoundArgumentList",
    "Import",
    "NormalizedTransaction",
    "StreamController",
    "StreamPhase",
    "bind_arguments",
    "create_transaction",
    "declaration_info",
    "get_address_imports",
    "get_parameter_list",
    "parse_arguments",
]
