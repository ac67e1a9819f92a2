"""
Transaction normalizer: raw Flow transaction + result to NormalizedTransaction.

Responsibilities:
- Account for the fee (FlowFees.FeesDeducted amount) and gas used
  (executionEffort scaled to integer gas units).
- Resolve positional arguments to their declared names.
- Annotate authorizer, payer, proposer and event-participant roles per address.
- Drop the fee bookkeeping events from the returned event list.

Failures that concern a single field (one argument, the imports) are noted
in the status string; anything else raises so the caller can isolate it.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from backend_flowindex.cadence.values import DEFAULT_OPTIONS, ConversionOptions
from backend_flowindex.config.env import NetworkConfig
from backend_flowindex.core.exceptions import ConversionError, FetchError, ParseError
from backend_flowindex.flow_listener.arguments import declaration_info
from backend_flowindex.flow_listener.events import (
    filter_fees,
    flatten,
    get_stakeholders,
    parse_events,
)
from backend_flowindex.flow_listener.imports import get_address_imports
from backend_flowindex.flow_listener.models import (
    Argument,
    Import,
    NormalizedTransaction,
    ParsedEvent,
    RawTransaction,
    RawTransactionResult,
)
from backend_flowindex.flowindex_logging import get_logger
from backend_flowindex.utils.address_utils import canonical_address

logger = get_logger(__name__)

# executionEffort is reported as UFix64; gas is the same quantity in 1e-8 units
GAS_SCALE = 100_000_000
INVALID_ARGUMENT_KEY = "invalid"

ROLE_AUTHORIZER = "authorizer"
ROLE_PAYER = "payer"
ROLE_PROPOSER = "proposer"


def _fee_field(fee_event: ParsedEvent | None, name: str) -> Decimal:
    """Read a numeric field of the fee event; absent -> 0, non-numeric or non-finite -> ConversionError."""
    if fee_event is None or name not in fee_event.fields:
        return Decimal(0)
    value = fee_event.fields[name]
    if isinstance(value, bool) or not isinstance(value, (Decimal, int)):
        raise ConversionError(f"fee event field {name!r} is not numeric: {value!r}")
    number = Decimal(value)
    if not number.is_finite():
        raise ConversionError(f"fee event field {name!r} is not finite: {value!r}")
    return number


def gas_from_effort(execution_effort: Decimal) -> int:
    """round(executionEffort * 1e8), half away from zero."""
    return int((execution_effort * GAS_SCALE).to_integral_value(rounding=ROUND_HALF_UP))


def _canonical(address: str, role: str) -> str:
    try:
        return canonical_address(address)
    except ValueError as e:
        raise ConversionError(f"invalid {role} address {address!r}") from e


def seed_stakeholders(authorizers: tuple[str, ...], payer: str, proposer: str) -> dict[str, list[str]]:
    """
    Roles from the envelope: authorizers first, then payer, then proposer,
    appended per canonical address. Raises ConversionError on an invalid address.
    """
    stakeholders: dict[str, list[str]] = {}
    for authorizer in authorizers:
        stakeholders[_canonical(authorizer, ROLE_AUTHORIZER)] = [ROLE_AUTHORIZER]
    stakeholders.setdefault(_canonical(payer, ROLE_PAYER), []).append(ROLE_PAYER)
    stakeholders.setdefault(_canonical(proposer, ROLE_PROPOSER), []).append(ROLE_PROPOSER)
    return stakeholders


def _resolve_arguments(
    transaction: RawTransaction,
    parameter_order: list[str],
    options: ConversionOptions,
) -> tuple[list[Argument], list[int]]:
    args: list[Argument] = []
    failed: list[int] = []
    for i in range(len(transaction.arguments)):
        value: Any = None
        try:
            value = transaction.argument(i, options)
        except (ConversionError, FetchError) as e:
            failed.append(i)
            logger.debug("argument_decode_failed", transaction_id=transaction.id, index=i, error=str(e))
        key = parameter_order[i] if i < len(parameter_order) else INVALID_ARGUMENT_KEY
        args.append(Argument(key=key, value=value))
    return args, failed


def create_transaction(
    block_id: str,
    result: RawTransactionResult,
    transaction: RawTransaction,
    index: int,
    network: NetworkConfig,
    options: ConversionOptions = DEFAULT_OPTIONS,
) -> NormalizedTransaction:
    """
    Normalize one executed transaction.

    Raises ConversionError when the events cannot be decoded, the fee event
    has a non-numeric amount/executionEffort, or none of the transaction's
    arguments can be decoded.
    """
    groups, fee_event = parse_events(result.events, "", options)
    fee = _fee_field(fee_event, "amount")
    execution_effort = _fee_field(fee_event, "executionEffort")
    gas_used = gas_from_effort(execution_effort)

    status = result.status
    info = declaration_info(transaction.script)
    args, failed = _resolve_arguments(transaction, info.parameter_order, options)
    if args and len(failed) == len(args):
        raise ConversionError(
            f"transaction {transaction.id}: none of its {len(args)} arguments could be decoded"
        )
    for i in failed:
        status = f"{status} failed getting argument at index {i}"

    imports: list[Import] = []
    try:
        imports = get_address_imports(transaction.script)
    except ParseError as e:
        status = f"{status} failed getting imports"
        logger.debug("imports_parse_failed", transaction_id=transaction.id, error=str(e))

    seed = seed_stakeholders(
        transaction.authorizers,
        transaction.payer,
        transaction.proposal_key.address,
    )
    without_fees = filter_fees(groups, fee, _canonical(transaction.payer, ROLE_PAYER), network)

    return NormalizedTransaction(
        id=result.transaction_id or transaction.id,
        block_id=block_id,
        index=index,
        status=status,
        authorizers=transaction.authorizers,
        payer=transaction.payer,
        proposal_key=transaction.proposal_key,
        fee=fee,
        gas_limit=transaction.gas_limit,
        gas_used=gas_used,
        execution_effort=execution_effort,
        events=tuple(flatten(without_fees)),
        imports=tuple(imports),
        arguments=tuple(args),
        stakeholders=get_stakeholders(without_fees, seed),
        script=transaction.script,
        error=result.error_message,
        authorizer_types=info.authorizers,
    )
