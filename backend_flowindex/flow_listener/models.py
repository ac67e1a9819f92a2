"""
Data models for Flow listener input and output.

Raw models mirror Flow Access REST responses (blocks, transactions,
transaction results, events) and are built with from_rpc_item(). Output
models (NormalizedTransaction, BlockResult) are what the stream emits.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from backend_flowindex.cadence.parser import Parameter
from backend_flowindex.cadence.values import (
    ConversionOptions,
    DEFAULT_OPTIONS,
    decode_json_cadence,
    encode_argument,
    to_argument_value,
)
from backend_flowindex.core.exceptions import ConversionError
from backend_flowindex.utils.address_utils import canonical_address


def _b64(value: Any) -> bytes:
    """Decode a base64 REST field; bytes pass through."""
    if value is None:
        return b""
    if isinstance(value, bytes):
        return value
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConversionError(f"invalid base64 field: {e}") from e


def _parse_timestamp(raw: Any) -> datetime | None:
    if not raw:
        return None
    if isinstance(raw, datetime):
        return raw
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass(frozen=True)
class Block:
    """A sealed block header."""

    id: str
    height: int
    parent_id: str = ""
    timestamp: datetime | None = None

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any]) -> "Block":
        """Build from a REST block (with or without the nested "header" object)."""
        header = item.get("header") or item
        return cls(
            id=header["id"],
            height=int(header["height"]),
            parent_id=header.get("parent_id") or "",
            timestamp=_parse_timestamp(header.get("timestamp")),
        )


@dataclass(frozen=True)
class ProposalKey:
    address: str
    key_index: int = 0
    sequence_number: int = 0

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any]) -> "ProposalKey":
        return cls(
            address=canonical_address(item["address"]),
            key_index=int(item.get("key_index") or 0),
            sequence_number=int(item.get("sequence_number") or 0),
        )


@dataclass(frozen=True)
class RawEvent:
    """An emitted event; payload is the JSON-Cadence document."""

    type: str
    transaction_id: str
    transaction_index: int
    event_index: int
    payload: bytes

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any]) -> "RawEvent":
        return cls(
            type=item["type"],
            transaction_id=item.get("transaction_id") or "",
            transaction_index=int(item.get("transaction_index") or 0),
            event_index=int(item.get("event_index") or 0),
            payload=_b64(item.get("payload")),
        )


@dataclass(frozen=True)
class RawTransactionResult:
    """Execution receipt of one transaction."""

    transaction_id: str
    status: str
    events: tuple[RawEvent, ...] = ()
    error_message: str | None = None
    block_id: str = ""
    block_height: int | None = None
    status_code: int = 0

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any], transaction_id: str = "") -> "RawTransactionResult":
        """REST results omit their own id; pass it when known."""
        height = item.get("block_height")
        return cls(
            transaction_id=item.get("transaction_id") or transaction_id,
            status=str(item.get("status") or "UNKNOWN").upper(),
            events=tuple(RawEvent.from_rpc_item(e) for e in item.get("events") or []),
            error_message=item.get("error_message") or None,
            block_id=item.get("block_id") or "",
            block_height=int(height) if height is not None else None,
            status_code=int(item.get("status_code") or 0),
        )


@dataclass(frozen=True)
class RawTransaction:
    """A transaction body as submitted; arguments are JSON-Cadence documents."""

    id: str
    script: bytes
    arguments: tuple[bytes, ...]
    authorizers: tuple[str, ...]
    payer: str
    proposal_key: ProposalKey
    gas_limit: int
    envelope_signatures: tuple[dict[str, Any], ...] = ()
    payload_signatures: tuple[dict[str, Any], ...] = ()

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any]) -> "RawTransaction":
        return cls(
            id=item["id"],
            script=_b64(item.get("script")),
            arguments=tuple(_b64(a) for a in item.get("arguments") or []),
            authorizers=tuple(canonical_address(a) for a in item.get("authorizers") or []),
            payer=canonical_address(item["payer"]),
            proposal_key=ProposalKey.from_rpc_item(item["proposal_key"]),
            gas_limit=int(item.get("gas_limit") or 0),
            envelope_signatures=tuple(item.get("envelope_signatures") or []),
            payload_signatures=tuple(item.get("payload_signatures") or []),
        )

    def argument(self, index: int, options: ConversionOptions = DEFAULT_OPTIONS) -> Any:
        """Decode the positional argument at index into a host value."""
        if not 0 <= index < len(self.arguments):
            raise ConversionError(f"no argument at index {index}")
        return decode_json_cadence(self.arguments[index], options)


@dataclass(frozen=True)
class Import:
    """An address-qualified contract dependency of a script."""

    address: str
    name: str

    def identifier(self) -> str:
        """Qualified type-id prefix: A.<hex address without 0x>.<name>."""
        return f"A.{self.address.lower().removeprefix('0x')}.{self.name}"


@dataclass(frozen=True)
class BoundArgument:
    name: str
    value: Any
    declared_type: str


@dataclass(frozen=True)
class BoundArgumentList:
    """Named inputs resolved against a parameter list, in declaration order."""

    arguments: tuple[BoundArgument, ...] = ()

    def __len__(self) -> int:
        return len(self.arguments)

    def __iter__(self) -> Iterator[BoundArgument]:
        return iter(self.arguments)

    def __getitem__(self, index: int) -> BoundArgument:
        return self.arguments[index]

    def names(self) -> list[str]:
        return [a.name for a in self.arguments]

    def to_cadence(self) -> list[bytes]:
        """Encode every value as JSON-Cadence according to its declared type."""
        return [encode_argument(to_argument_value(a.value, a.declared_type)) for a in self.arguments]


@dataclass(frozen=True)
class Argument:
    """A decoded positional transaction argument, keyed by its declared name."""

    key: str
    value: Any


@dataclass(frozen=True)
class ParsedEvent:
    """A decoded event with its address-typed fields resolved."""

    id: str
    name: str
    fields: Mapping[str, Any]
    addresses: Mapping[str, str]
    transaction_id: str
    transaction_index: int
    event_index: int

    def stakeholders(self) -> dict[str, list[str]]:
        """address -> roles ("<event type>/<field>") this event contributes."""
        out: dict[str, list[str]] = {}
        for field_name, address in self.addresses.items():
            out.setdefault(address, []).append(f"{self.name}/{field_name}")
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "fields": dict(self.fields),
            "transaction_id": self.transaction_id,
            "event_index": self.event_index,
        }


@dataclass(frozen=True)
class NormalizedTransaction:
    """
    Structured, fee/gas-accounted record of one executed transaction.

    Sequences are tuples and stakeholders is a read-only mapping; the record
    does not change after construction.
    """

    id: str
    block_id: str
    index: int
    status: str
    authorizers: tuple[str, ...]
    payer: str
    proposal_key: ProposalKey
    fee: Decimal
    gas_limit: int
    gas_used: int
    execution_effort: Decimal
    events: tuple[ParsedEvent, ...]
    imports: tuple[Import, ...]
    arguments: tuple[Argument, ...]
    stakeholders: Mapping[str, tuple[str, ...]]
    script: bytes
    error: str | None = None
    authorizer_types: tuple[Parameter, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.stakeholders, MappingProxyType):
            frozen = {k: tuple(v) for k, v in self.stakeholders.items()}
            object.__setattr__(self, "stakeholders", MappingProxyType(frozen))

    @property
    def proposal_key_address(self) -> str:
        return self.proposal_key.address

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly dict (Decimals as strings)."""
        return {
            "id": self.id,
            "block_id": self.block_id,
            "index": self.index,
            "status": self.status,
            "authorizers": list(self.authorizers),
            "payer": self.payer,
            "proposer": self.proposal_key.address,
            "fee": str(self.fee),
            "gas_limit": self.gas_limit,
            "gas_used": self.gas_used,
            "execution_effort": str(self.execution_effort),
            "events": [e.to_dict() for e in self.events],
            "imports": [i.identifier() for i in self.imports],
            "arguments": [{"key": a.key, "value": a.value} for a in self.arguments],
            "stakeholders": {k: list(v) for k, v in self.stakeholders.items()},
            "error": self.error,
        }


@dataclass(frozen=True)
class TransactionFailure:
    """A block entry that could not be normalized; the rest of the block is unaffected."""

    index: int
    transaction_id: str
    error: Exception


@dataclass
class BlockResult:
    """Everything the stream emits for one height; owned by the consumer after delivery."""

    block: Block
    start_time: datetime
    transactions: list[NormalizedTransaction] = field(default_factory=list)
    system_chunk_events: list[ParsedEvent] = field(default_factory=list)
    failures: list[TransactionFailure] = field(default_factory=list)
    error: Exception | None = None

    @property
    def height(self) -> int:
        return self.block.height
