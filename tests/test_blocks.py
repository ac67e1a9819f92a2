"""
Tests for block assembly: system chunk handling, unsigned entries and
per-entry fault isolation.
"""

from __future__ import annotations

import asyncio

import pytest

from backend_flowindex.core.exceptions import ConversionError, FetchError, TransientIndexingError
from backend_flowindex.flow_listener.blocks import BlockAssembler, is_transient_indexing_error
from backend_flowindex.flow_listener.models import RawEvent

from conftest import FEES_EVENT

SYSTEM_EVENT = "flow.EpochSetup"


def _system_result(flow, height, count=2):
    events = [
        flow.event(SYSTEM_EVENT, i, {"counter": {"type": "UInt64", "value": str(i)}}, transaction_index=2,
                   transaction_id="system")
        for i in range(count)
    ]
    return flow.result(tx_id="system", events=events)


def _block_contents(flow):
    """Two user transactions plus the system chunk entry."""
    txs = [flow.transaction("t0"), flow.transaction("t1"), flow.transaction("system", signed=False)]
    results = [
        flow.result("t0", flow.fee_events()),
        flow.result("t1"),
        _system_result(flow, 10),
    ]
    return txs, results


def test_system_chunk_split(flow, mainnet, fake_client_cls):
    block = flow.block(10)
    client = fake_client_cls([block], {10: block}, {block.id: [_block_contents(flow)]})
    result = asyncio.run(BlockAssembler(client, mainnet).assemble_block(10))
    assert [t.id for t in result.transactions] == ["t0", "t1"]
    assert len(result.system_chunk_events) == 2
    assert [e.id for e in result.system_chunk_events] == ["10-2-0", "10-2-1"]
    assert all(t.id != "system" for t in result.transactions)
    assert result.failures == []
    assert result.error is None
    assert result.height == 10


def test_emulator_has_no_system_chunk(flow, emulator, fake_client_cls):
    block = flow.block(3)
    txs = [flow.transaction("t0"), flow.transaction("t1")]
    results = [flow.result("t0"), flow.result("t1")]
    client = fake_client_cls([block], {3: block}, {block.id: [(txs, results)]})
    result = asyncio.run(BlockAssembler(client, emulator).assemble_block(3))
    assert [t.id for t in result.transactions] == ["t0", "t1"]
    assert result.system_chunk_events == []


def test_unsigned_entry_excluded(flow, mainnet, fake_client_cls):
    block = flow.block(11)
    txs = [flow.transaction("t0", signed=False), flow.transaction("t1"), flow.transaction("system")]
    results = [flow.result("t0", flow.fee_events()), flow.result("t1"), _system_result(flow, 11, count=0)]
    client = fake_client_cls([block], {11: block}, {block.id: [(txs, results)]})
    result = asyncio.run(BlockAssembler(client, mainnet).assemble_block(11))
    assert [(t.id, t.index) for t in result.transactions] == [("t1", 1)]
    assert result.system_chunk_events == []


def test_bad_entry_isolated(flow, mainnet, fake_client_cls):
    block = flow.block(12)
    bad = flow.transaction("t1", arguments=(b"{broken", b"{also broken"))
    txs = [flow.transaction("t0"), bad, flow.transaction("t2"), flow.transaction("system")]
    results = [flow.result("t0"), flow.result("t1"), flow.result("t2"), _system_result(flow, 12)]
    client = fake_client_cls([block], {12: block}, {block.id: [(txs, results)]})
    result = asyncio.run(BlockAssembler(client, mainnet).assemble_block(12))
    assert [t.id for t in result.transactions] == ["t0", "t2"]
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert (failure.index, failure.transaction_id) == (1, "t1")
    assert isinstance(failure.error, ConversionError)


def test_fewer_transactions_than_results(flow, mainnet, fake_client_cls):
    block = flow.block(13)
    txs = [flow.transaction("t0")]
    results = [flow.result("t0"), flow.result("t1"), _system_result(flow, 13)]
    client = fake_client_cls([block], {13: block}, {block.id: [(txs, results)]})
    with pytest.raises(FetchError, match="1 transactions for 2 results"):
        asyncio.run(BlockAssembler(client, mainnet).assemble_block(13))


def test_collection_not_found_is_transient(flow, mainnet, fake_client_cls):
    block = flow.block(14)
    error = RuntimeError("rpc error: could not retrieve collection: key not found")
    client = fake_client_cls([block], {14: block}, {block.id: [error]})
    with pytest.raises(TransientIndexingError):
        asyncio.run(BlockAssembler(client, mainnet).assemble_block(14))


def test_other_access_errors_are_fetch_errors(flow, mainnet, fake_client_cls):
    block = flow.block(15)
    client = fake_client_cls([block], {15: block}, {block.id: [RuntimeError("connection reset")]})
    with pytest.raises(FetchError) as exc:
        asyncio.run(BlockAssembler(client, mainnet).assemble_block(15))
    assert not isinstance(exc.value, TransientIndexingError)
    with pytest.raises(FetchError, match="height 99"):
        asyncio.run(BlockAssembler(client, mainnet).assemble_block(99))


def test_is_transient_indexing_error():
    assert is_transient_indexing_error(Exception("Collection Not Found"))
    assert not is_transient_indexing_error(Exception("timeout"))


def test_transaction_by_id_takes_index_from_events(flow, mainnet, fake_client_cls):
    block = flow.block(20)
    events = [flow.event("A.01.X.Y", 0, {}, transaction_index=4, transaction_id="t0")]
    txs = [flow.transaction("t0")]
    results = [flow.result("t0", events)]
    client = fake_client_cls([block], {20: block}, {block.id: [(txs, results)]})
    tx = asyncio.run(BlockAssembler(client, mainnet).transaction_by_id("t0"))
    assert tx.id == "t0"
    assert tx.index == 4
    assert [e.id for e in tx.events] == ["4-0"]


def test_undecodable_system_chunk_isolated(flow, mainnet, fake_client_cls):
    """A bad system chunk payload is one failure; user transactions still come through."""
    block = flow.block(30)
    broken = RawEvent("flow.X", "system", 1, 0, b"{not json")
    txs = [flow.transaction("t0"), flow.transaction("system")]
    results = [flow.result("t0", flow.fee_events()), flow.result("system", [broken])]
    client = fake_client_cls([block], {30: block}, {block.id: [(txs, results)]})
    result = asyncio.run(BlockAssembler(client, mainnet).assemble_block(30))
    assert [t.id for t in result.transactions] == ["t0"]
    assert result.system_chunk_events == []
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert (failure.index, failure.transaction_id) == (1, "system")
    assert isinstance(failure.error, ConversionError)


def test_fetch_error_with_collection_signature_is_transient(flow, mainnet, fake_client_cls):
    block = flow.block(31)
    error = FetchError("could not retrieve collection: key not found")
    client = fake_client_cls([block], {31: block}, {block.id: [error]})
    with pytest.raises(TransientIndexingError) as exc:
        asyncio.run(BlockAssembler(client, mainnet).assemble_block(31))
    assert exc.value.__cause__ is error


def test_plain_fetch_error_passes_through(flow, mainnet, fake_client_cls):
    block = flow.block(32)
    error = FetchError("node unavailable")
    client = fake_client_cls([block], {32: block}, {block.id: [error]})
    with pytest.raises(FetchError) as exc:
        asyncio.run(BlockAssembler(client, mainnet).assemble_block(32))
    assert exc.value is error


def test_bad_fee_effort_isolated(flow, mainnet, fake_client_cls):
    """A non-finite executionEffort fails only its own entry."""
    block = flow.block(33)
    fee = flow.event(FEES_EVENT, 0, {
        "amount": flow.ufix("0.00001000"),
        "executionEffort": flow.ufix("NaN"),
    }, transaction_index=1, transaction_id="t1")
    txs = [flow.transaction("t0"), flow.transaction("t1"), flow.transaction("system")]
    results = [flow.result("t0"), flow.result("t1", [fee]), flow.result("system")]
    client = fake_client_cls([block], {33: block}, {block.id: [(txs, results)]})
    result = asyncio.run(BlockAssembler(client, mainnet).assemble_block(33))
    assert [t.id for t in result.transactions] == ["t0"]
    assert [(f.index, f.transaction_id) for f in result.failures] == [(1, "t1")]
    assert isinstance(result.failures[0].error, ConversionError)
