"""
Argument binding: named inputs to a script's declared parameters.

A script declares its parameters either on the `main` entry point or, for a
transaction, on the single `transaction(...)` declaration. bind_arguments()
matches a name -> value mapping against that ordered list and reports every
missing or extra name at once.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from backend_flowindex.cadence.parser import Parameter, Program, parse_program
from backend_flowindex.core.exceptions import (
    MissingArgumentsError,
    ParseError,
    RedundantArgumentsError,
)
from backend_flowindex.flow_listener.models import BoundArgument, BoundArgumentList
from backend_flowindex.flowindex_logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DeclarationInfo:
    """Parameter order of a script plus the authorizer parameters of its prepare block."""

    parameters: tuple[Parameter, ...] = ()
    authorizers: tuple[Parameter, ...] = ()

    @property
    def parameter_order(self) -> list[str]:
        return [p.name for p in self.parameters]


def get_parameter_list(program: Program) -> list[Parameter]:
    """
    Return the declared parameters of a program.

    The entry point's parameters are used unless the program declares exactly
    one transaction, whose parameters then take precedence. Empty otherwise.
    """
    parameters: list[Parameter] = []
    entry = program.entry_point()
    if entry is not None:
        parameters = list(entry.parameters)
    if len(program.transactions) == 1:
        parameters = list(program.transactions[0].parameters)
    return parameters


def declaration_info(script: bytes | str) -> DeclarationInfo:
    """Describe a script's declarations; unparseable source yields an empty info."""
    try:
        program = parse_program(script)
    except ParseError as e:
        logger.debug("declaration_info_parse_failed", error=str(e))
        return DeclarationInfo()
    authorizers: tuple[Parameter, ...] = ()
    if len(program.transactions) == 1:
        authorizers = program.transactions[0].prepare_parameters
    return DeclarationInfo(tuple(get_parameter_list(program)), authorizers)


def bind_arguments(
    parameters: Sequence[Parameter],
    inputs: Mapping[str, Any],
) -> BoundArgumentList:
    """
    Bind named inputs to declared parameters, preserving declaration order.

    Raises MissingArgumentsError naming every declared parameter absent from
    inputs; otherwise RedundantArgumentsError naming every input that matches
    no parameter. Values are carried as given (tagged ArgumentValue or plain).
    """
    missing: list[str] = []
    bound: list[BoundArgument] = []
    for parameter in parameters:
        if parameter.name not in inputs:
            missing.append(parameter.name)
            continue
        bound.append(BoundArgument(parameter.name, inputs[parameter.name], parameter.type))

    if missing:
        raise MissingArgumentsError(missing)

    declared = {p.name for p in parameters}
    redundant = [key for key in inputs if key not in declared]
    if redundant:
        raise RedundantArgumentsError(redundant)
    return BoundArgumentList(tuple(bound))


def parse_arguments(
    code: bytes | str,
    inputs: Mapping[str, Any],
) -> tuple[list[bytes], dict[str, bytes]]:
    """
    Parse code, bind inputs and encode them as JSON-Cadence.

    Returns the positional payloads and the same payloads keyed by name.
    """
    program = parse_program(code)
    bound = bind_arguments(get_parameter_list(program), inputs)
    encoded = bound.to_cadence()
    return encoded, dict(zip(bound.names(), encoded))
