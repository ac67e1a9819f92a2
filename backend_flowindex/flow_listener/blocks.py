"""
Block assembly: one height's raw transactions/results to a BlockResult.

Responsibilities:
- Define the access node interface the listener consumes (AccessClient).
- Split the trailing system chunk off the results (not on the emulator).
- Skip entries without envelope signatures (protocol heartbeats).
- Normalize every remaining entry, isolating per-entry failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone

from backend_flowindex.cadence.values import DEFAULT_OPTIONS, ConversionOptions
from backend_flowindex.config.env import NetworkConfig
from backend_flowindex.core.exceptions import (
    FetchError,
    FlowIndexError,
    TransientIndexingError,
)
from backend_flowindex.flow_listener.events import flatten, parse_events
from backend_flowindex.flow_listener.models import (
    Block,
    BlockResult,
    NormalizedTransaction,
    ParsedEvent,
    RawTransaction,
    RawTransactionResult,
    TransactionFailure,
)
from backend_flowindex.flow_listener.normalizer import create_transaction
from backend_flowindex.flowindex_logging import get_logger

logger = get_logger(__name__)

# Returned by access nodes while a block's collections are not indexed yet
COLLECTION_NOT_FOUND_SIGNATURES = (
    "could not retrieve collection: key not found",
    "collection not found",
)


class AccessClient(ABC):
    """
    Interface for Flow access node clients. Implementations own timeouts and retries.

    Failures may be raised as any exception or as FetchError. Either way a
    message carrying a "collection not found" signature marks data that is
    not indexed yet; raise TransientIndexingError directly to say so explicitly.
    """

    @abstractmethod
    async def latest_block(self) -> Block | None:
        """Return the latest sealed block (None if the node has none to report)."""

    @abstractmethod
    async def block_at_height(self, height: int) -> Block:
        """Return the sealed block at height."""

    @abstractmethod
    async def transaction_by_id(self, transaction_id: str) -> tuple[RawTransaction, RawTransactionResult]:
        """Return a transaction and its result."""

    @abstractmethod
    async def transactions_for_block(
        self, block_id: str
    ) -> tuple[list[RawTransaction], list[RawTransactionResult]]:
        """
        Return the block's transactions and results, aligned by position.

        On non-local networks the last result belongs to the system chunk.
        """


def is_transient_indexing_error(error: BaseException) -> bool:
    message = str(error).lower()
    return any(sig in message for sig in COLLECTION_NOT_FOUND_SIGNATURES)


@dataclass
class BlockTransactions:
    """Normalized content of one block."""

    transactions: list[NormalizedTransaction] = field(default_factory=list)
    system_chunk_events: list[ParsedEvent] = field(default_factory=list)
    failures: list[TransactionFailure] = field(default_factory=list)


class BlockAssembler:
    """
    Fetches and normalizes the transactions of a block.

    Network identity and conversion options are fixed per assembler and
    passed down to every normalization call.
    """

    def __init__(
        self,
        client: AccessClient,
        network: NetworkConfig,
        options: ConversionOptions = DEFAULT_OPTIONS,
    ) -> None:
        self._client = client
        self._network = network
        self._options = options

    @property
    def client(self) -> AccessClient:
        return self._client

    async def _fetch(self, block: Block) -> tuple[list[RawTransaction], list[RawTransactionResult]]:
        try:
            return await self._client.transactions_for_block(block.id)
        except TransientIndexingError:
            raise
        except FetchError as e:
            if is_transient_indexing_error(e):
                raise TransientIndexingError(str(e)) from e
            raise
        except FlowIndexError:
            raise
        except Exception as e:
            if is_transient_indexing_error(e):
                raise TransientIndexingError(f"getting transaction results: {e}") from e
            raise FetchError(f"getting transaction results: {e}") from e

    async def transactions_for_block(self, block: Block) -> BlockTransactions:
        """
        Normalize every user transaction of block.

        Raises TransientIndexingError when the block's collections are not
        indexed yet and FetchError on any other access node failure.
        """
        transactions, results = await self._fetch(block)
        logger.debug(
            "block_transactions_fetched",
            block_id=block.id,
            height=block.height,
            tx=len(transactions),
            tx_results=len(results),
        )
        has_system_chunk = not self._network.is_local and len(results) > 0
        user_results = results[:-1] if has_system_chunk else results
        if len(transactions) < len(user_results):
            raise FetchError(
                f"block {block.id}: {len(transactions)} transactions for {len(user_results)} results"
            )

        out = BlockTransactions()
        if has_system_chunk:
            system = results[-1]
            try:
                groups, _ = parse_events(system.events, f"{block.height}-", self._options)
            except FlowIndexError as e:
                logger.warning(
                    "system_chunk_decode_failed",
                    height=block.height,
                    transaction_id=system.transaction_id,
                    error=str(e),
                )
                out.failures.append(TransactionFailure(len(results) - 1, system.transaction_id, e))
            else:
                out.system_chunk_events = flatten(groups)
                if out.system_chunk_events:
                    logger.debug("system_chunk_events", height=block.height, events=len(out.system_chunk_events))

        for i, result in enumerate(user_results):
            transaction = transactions[i]
            if not transaction.envelope_signatures:
                logger.debug("skip_unsigned_entry", height=block.height, index=i, transaction_id=transaction.id)
                continue
            try:
                out.transactions.append(
                    create_transaction(block.id, result, transaction, i, self._network, self._options)
                )
            except FlowIndexError as e:
                logger.warning(
                    "transaction_normalize_failed",
                    height=block.height,
                    index=i,
                    transaction_id=transaction.id,
                    error=str(e),
                )
                out.failures.append(TransactionFailure(i, transaction.id, e))
        return out

    async def assemble_block(self, height: int) -> BlockResult:
        """Fetch the block at height and return its full BlockResult."""
        start = datetime.now(timezone.utc)
        try:
            block = await self._client.block_at_height(height)
        except FlowIndexError:
            raise
        except Exception as e:
            raise FetchError(f"getting block at height {height}: {e}") from e
        content = await self.transactions_for_block(block)
        return BlockResult(
            block=block,
            start_time=start,
            transactions=content.transactions,
            system_chunk_events=content.system_chunk_events,
            failures=content.failures,
        )

    async def transaction_by_id(self, transaction_id: str) -> NormalizedTransaction:
        """Fetch and normalize a single transaction; its index comes from its first event."""
        try:
            transaction, result = await self._client.transaction_by_id(transaction_id)
        except FlowIndexError:
            raise
        except Exception as e:
            raise FetchError(f"getting transaction {transaction_id}: {e}") from e
        index = result.events[0].transaction_index if result.events else 0
        return create_transaction(result.block_id, result, transaction, index, self._network, self._options)
