"""
Event decoding: raw JSON-Cadence events to grouped ParsedEvents.

Events are grouped by type id in first-seen order. The fee event
(FlowFees.FeesDeducted) is returned separately so the normalizer can account
for it, and filter_fees() drops the fee bookkeeping events so a transaction's
event list only shows what the transaction itself did.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Iterable, Mapping

from backend_flowindex.cadence.values import (
    DEFAULT_OPTIONS,
    ConversionOptions,
    composite_addresses,
    decode_value,
)
from backend_flowindex.config.env import NetworkConfig
from backend_flowindex.core.exceptions import ConversionError
from backend_flowindex.flow_listener.models import ParsedEvent, RawEvent

FEE_EVENT_SUFFIX = "FlowFees.FeesDeducted"

EventGroups = dict[str, list[ParsedEvent]]


def _type_prefix(address: str) -> str:
    return "A." + address.removeprefix("0x")


def parse_event(
    raw: RawEvent,
    id_prefix: str = "",
    options: ConversionOptions = DEFAULT_OPTIONS,
) -> ParsedEvent:
    """Decode one event payload; raises ConversionError when it is not a composite."""
    try:
        obj = json.loads(raw.payload)
    except (ValueError, TypeError) as e:
        raise ConversionError(f"event {raw.type} has an invalid payload: {e}") from e
    fields = decode_value(obj, options)
    if not isinstance(fields, dict):
        raise ConversionError(f"event {raw.type} payload is not a composite value")
    return ParsedEvent(
        id=f"{id_prefix}{raw.transaction_index}-{raw.event_index}",
        name=raw.type,
        fields=fields,
        addresses=composite_addresses(obj),
        transaction_id=raw.transaction_id,
        transaction_index=raw.transaction_index,
        event_index=raw.event_index,
    )


def parse_events(
    raw_events: Iterable[RawEvent],
    id_prefix: str = "",
    options: ConversionOptions = DEFAULT_OPTIONS,
) -> tuple[EventGroups, ParsedEvent | None]:
    """Group decoded events by type; also return the fee event if one was emitted."""
    groups: EventGroups = {}
    fee: ParsedEvent | None = None
    for raw in raw_events:
        event = parse_event(raw, id_prefix, options)
        groups.setdefault(event.name, []).append(event)
        if event.name.endswith(FEE_EVENT_SUFFIX):
            fee = event
    return groups, fee


def _drop_first(events: list[ParsedEvent], amount: Decimal, field: str, address: str) -> list[ParsedEvent]:
    for i, event in enumerate(events):
        if event.fields.get("amount") == amount and event.fields.get(field) == address:
            return events[:i] + events[i + 1:]
    return events


def filter_fees(
    groups: Mapping[str, list[ParsedEvent]],
    fee: Decimal,
    payer: str,
    network: NetworkConfig,
) -> EventGroups:
    """
    Return groups without the fee bookkeeping: the FeesDeducted event, the
    payer's withdrawal of exactly fee and the FlowFees vault's deposit of it.
    A zero fee has no attributable transfer and leaves token events untouched.
    """
    token = _type_prefix(network.flow_token) + ".FlowToken"
    withdrawn = token + ".TokensWithdrawn"
    deposited = token + ".TokensDeposited"

    out: EventGroups = {}
    for name, events in groups.items():
        if name.endswith(FEE_EVENT_SUFFIX):
            continue
        kept = list(events)
        if fee > 0 and name == withdrawn:
            kept = _drop_first(kept, fee, "from", payer)
        elif fee > 0 and name == deposited:
            kept = _drop_first(kept, fee, "to", network.fee_receiver)
        if kept:
            out[name] = kept
    return out


def flatten(groups: Mapping[str, list[ParsedEvent]]) -> list[ParsedEvent]:
    """All events of all groups in emission order."""
    events = [event for group in groups.values() for event in group]
    return sorted(events, key=lambda e: (e.transaction_index, e.event_index))


def get_stakeholders(
    groups: Mapping[str, list[ParsedEvent]],
    seed: Mapping[str, list[str]],
) -> dict[str, list[str]]:
    """
    Merge event participants into a copy of seed.

    Seed roles keep their order; each event appends "<event type>/<field>"
    for every address-typed field, in emission order. seed is not modified.
    """
    stakeholders = {address: list(roles) for address, roles in seed.items()}
    for event in flatten(groups):
        for address, roles in event.stakeholders().items():
            stakeholders.setdefault(address, []).extend(roles)
    return stakeholders
