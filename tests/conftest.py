"""
Pytest fixtures for FlowIndex tests. Builders for JSON-Cadence payloads,
raw transactions/results, and an in-memory AccessClient.
"""

from __future__ import annotations

import json
from typing import Any

import pytest

from backend_flowindex.config.env import get_network_config
from backend_flowindex.flow_listener.blocks import AccessClient
from backend_flowindex.flow_listener.models import (
    Block,
    ProposalKey,
    RawEvent,
    RawTransaction,
    RawTransactionResult,
)

PAYER = "0x01cf0e2f2f715450"
AUTHORIZER = "0x179b6b1cb6755e31"
PROPOSER = "0xf3fcd2c1a78f5eee"

FEES_EVENT = "A.f919ee77447b7497.FlowFees.FeesDeducted"
TOKENS_WITHDRAWN = "A.1654653399040a61.FlowToken.TokensWithdrawn"
TOKENS_DEPOSITED = "A.1654653399040a61.FlowToken.TokensDeposited"
FEE_VAULT = "0xf919ee77447b7497"

TRANSFER_SCRIPT = b"""
import FungibleToken from 0xf233dcee88fe0abe
import FlowToken from 0x1654653399040a61

transaction(amount: UFix64, to: Address) {
    prepare(signer: auth(BorrowValue) &Account) {}
    execute {}
}
"""


class FlowFactory:
    """Builders for raw Flow data used across tests."""

    payer = PAYER
    authorizer = AUTHORIZER
    proposer = PROPOSER

    @staticmethod
    def ufix(value: str) -> dict[str, Any]:
        return {"type": "UFix64", "value": value}

    @staticmethod
    def addr(value: str) -> dict[str, Any]:
        return {"type": "Address", "value": value}

    @staticmethod
    def opt(value: dict[str, Any] | None) -> dict[str, Any]:
        return {"type": "Optional", "value": value}

    @staticmethod
    def string(value: str) -> dict[str, Any]:
        return {"type": "String", "value": value}

    @staticmethod
    def event_payload(type_id: str, fields: dict[str, Any]) -> bytes:
        doc = {
            "type": "Event",
            "value": {
                "id": type_id,
                "fields": [{"name": k, "value": v} for k, v in fields.items()],
            },
        }
        return json.dumps(doc).encode()

    def event(
        self,
        type_id: str,
        event_index: int,
        fields: dict[str, Any],
        transaction_index: int = 0,
        transaction_id: str = "tx1",
    ) -> RawEvent:
        return RawEvent(
            type=type_id,
            transaction_id=transaction_id,
            transaction_index=transaction_index,
            event_index=event_index,
            payload=self.event_payload(type_id, fields),
        )

    def fee_events(
        self,
        amount: str = "0.00001000",
        effort: str = "0.00000001",
        payer: str = PAYER,
        first_index: int = 0,
    ) -> list[RawEvent]:
        """Withdrawal from the payer, deposit to the fee vault, FeesDeducted."""
        return [
            self.event(TOKENS_WITHDRAWN, first_index, {
                "amount": self.ufix(amount),
                "from": self.opt(self.addr(payer)),
            }),
            self.event(TOKENS_DEPOSITED, first_index + 1, {
                "amount": self.ufix(amount),
                "to": self.opt(self.addr(FEE_VAULT)),
            }),
            self.event(FEES_EVENT, first_index + 2, {
                "amount": self.ufix(amount),
                "inclusionEffort": self.ufix("1.00000000"),
                "executionEffort": self.ufix(effort),
            }),
        ]

    def transaction(
        self,
        tx_id: str = "tx1",
        script: bytes = TRANSFER_SCRIPT,
        arguments: tuple[bytes, ...] = (),
        authorizers: tuple[str, ...] = (PAYER,),
        payer: str = PAYER,
        proposer: str = PAYER,
        signed: bool = True,
    ) -> RawTransaction:
        signatures = ({"address": payer, "key_index": "0", "signature": "c2ln"},) if signed else ()
        return RawTransaction(
            id=tx_id,
            script=script,
            arguments=arguments,
            authorizers=authorizers,
            payer=payer,
            proposal_key=ProposalKey(address=proposer, key_index=0, sequence_number=7),
            gas_limit=9999,
            envelope_signatures=signatures,
        )

    @staticmethod
    def result(tx_id: str = "tx1", events: list[RawEvent] | None = None, status: str = "SEALED") -> RawTransactionResult:
        return RawTransactionResult(transaction_id=tx_id, status=status, events=tuple(events or ()))

    @staticmethod
    def block(height: int) -> Block:
        return Block(id=f"block-{height}", height=height, parent_id=f"block-{height - 1}")


class FakeAccessClient(AccessClient):
    """
    In-memory access node.

    heads is consumed one entry per latest_block() call; the last entry repeats.
    Entries of contents may be an exception, raised once and then dropped.
    """

    def __init__(
        self,
        heads: list[Block | None],
        blocks: dict[int, Block] | None = None,
        contents: dict[str, list[Any]] | None = None,
    ) -> None:
        self.heads = list(heads)
        self.blocks = dict(blocks or {})
        self.contents = dict(contents or {})
        self.calls: list[tuple[str, Any]] = []

    async def latest_block(self) -> Block | None:
        self.calls.append(("latest_block", None))
        head = self.heads[0]
        if len(self.heads) > 1:
            self.heads.pop(0)
        if isinstance(head, Exception):
            raise head
        return head

    async def block_at_height(self, height: int) -> Block:
        self.calls.append(("block_at_height", height))
        if height not in self.blocks:
            raise RuntimeError(f"block {height} not found")
        return self.blocks[height]

    async def transaction_by_id(self, transaction_id: str) -> tuple[RawTransaction, RawTransactionResult]:
        self.calls.append(("transaction_by_id", transaction_id))
        for entries in self.contents.values():
            for entry in entries:
                if isinstance(entry, Exception):
                    continue
                for tx, res in zip(*entry):
                    if tx.id == transaction_id:
                        return tx, res
        raise RuntimeError(f"transaction {transaction_id} not found")

    async def transactions_for_block(self, block_id: str) -> tuple[list[RawTransaction], list[RawTransactionResult]]:
        self.calls.append(("transactions_for_block", block_id))
        entries = self.contents.get(block_id)
        if not entries:
            return [], []
        entry = entries[0]
        if isinstance(entry, Exception):
            entries.pop(0)
            raise entry
        return entry


@pytest.fixture
def flow() -> FlowFactory:
    return FlowFactory()


@pytest.fixture
def mainnet():
    return get_network_config("mainnet")


@pytest.fixture
def emulator():
    return get_network_config("emulator")


@pytest.fixture
def fake_client_cls():
    return FakeAccessClient
