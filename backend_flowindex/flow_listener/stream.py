"""
Block stream: polling loop that catches up on or tails sealed blocks.

Each tick decides, from the current height and the last known head, whether
to fetch a historical block (catching up), re-observe the head (backoff) or
process the head itself (tailing). A head that moved is only recorded on the
tick that observes it; processing waits for the next tick so only a height
already confirmed equal to the candidate is ever emitted.

Results are delivered on an asyncio.Queue; a full queue stalls the loop.
Setting the stop event ends the loop at the next wait or send.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum

from backend_flowindex.config.settings import DEFAULT_RETRY_INTERVAL_SEC, Settings
from backend_flowindex.core.exceptions import (
    FetchError,
    StreamCancelled,
    TerminalBlockError,
    TransientIndexingError,
)
from backend_flowindex.flow_listener.blocks import AccessClient, BlockAssembler
from backend_flowindex.flow_listener.models import Block, BlockResult
from backend_flowindex.flowindex_logging import get_logger

logger = get_logger(__name__)


class StreamPhase(str, Enum):
    IDLE = "idle"
    CATCHING_UP = "catching_up"
    TAILING = "tailing"
    BACKOFF = "backoff"


def plan_tick(height: int, latest_known: int) -> tuple[int, StreamPhase]:
    """
    Return the candidate height for this tick and the phase it falls in.

    height is the last emitted height (0 before the first emission, meaning
    "start at the current head").
    """
    if height == 0:
        return latest_known, StreamPhase.TAILING
    candidate = height + 1
    if candidate < latest_known:
        return candidate, StreamPhase.CATCHING_UP
    if candidate != latest_known:
        return candidate, StreamPhase.BACKOFF
    return candidate, StreamPhase.TAILING


def observe_head(
    latest_known: Block,
    observed: Block | None,
    poll_interval: float,
    retry_interval: float,
) -> tuple[Block, float]:
    """
    Fold a freshly observed head into the stream state.

    Returns the head to keep and the next sleep: the short retry interval
    while the head has not moved, the poll interval once it has.
    """
    if observed is None or observed.height == latest_known.height:
        return latest_known, retry_interval
    return observed, poll_interval


class StreamController:
    """
    Drives a BlockAssembler over successive heights for one subscriber.

    All mutable state (height, last known head) lives inside stream(); the
    controller itself can run several independent streams.
    """

    def __init__(
        self,
        assembler: BlockAssembler,
        *,
        retry_interval_sec: float = DEFAULT_RETRY_INTERVAL_SEC,
    ) -> None:
        if retry_interval_sec <= 0:
            raise ValueError("retry_interval_sec must be positive")
        self._assembler = assembler
        self._client = assembler.client
        self._retry_interval = retry_interval_sec

    @classmethod
    def from_settings(cls, client: AccessClient, settings: Settings) -> "StreamController":
        """Build a controller whose assembler uses the settings' network and conversion options."""
        assembler = BlockAssembler(client, settings.network_config(), settings.conversion_options())
        logger.info(
            "stream_configured",
            network=settings.network,
            access_url=settings.access_url,
            retry_interval_sec=settings.retry_interval_sec,
        )
        return cls(assembler, retry_interval_sec=settings.retry_interval_sec)

    async def _wait(self, seconds: float, stop_event: asyncio.Event) -> None:
        """Sleep for seconds; raise StreamCancelled if stop_event is set meanwhile."""
        if stop_event.is_set():
            raise StreamCancelled("stream stopped")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise StreamCancelled("stream stopped")

    async def _emit(
        self,
        result: BlockResult,
        stop_event: asyncio.Event,
        channel: asyncio.Queue[BlockResult],
    ) -> None:
        """Send result, or raise StreamCancelled if the stop event wins the race."""
        if stop_event.is_set():
            raise StreamCancelled("stream stopped")
        put = asyncio.ensure_future(channel.put(result))
        stopped = asyncio.ensure_future(stop_event.wait())
        try:
            await asyncio.wait({put, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (put, stopped):
                if not task.done():
                    task.cancel()
        if put.done() and not put.cancelled():
            return
        raise StreamCancelled("stream stopped")

    async def _latest_block(self) -> Block | None:
        try:
            return await self._client.latest_block()
        except Exception as e:
            raise FetchError(f"getting latest block: {e}") from e

    async def stream(
        self,
        poll_interval: float,
        start_height: int,
        stop_event: asyncio.Event,
        channel: asyncio.Queue[BlockResult],
    ) -> None:
        """
        Emit a BlockResult per height on channel until stop_event is set.

        start_height is the last height already processed; 0 starts at the
        current head. Raises FetchError if the head cannot be read at start
        and StreamCancelled when stopped. Never returns normally.
        """
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if start_height < 0:
            raise ValueError("start_height must be non-negative")

        latest_known = await self._latest_block()
        if latest_known is None:
            raise FetchError("access node returned no latest block")
        logger.info("stream_started", latest_block=latest_known.height, start_height=start_height)

        height = start_height
        sleep = poll_interval
        phase = StreamPhase.IDLE
        while True:
            await self._wait(sleep, stop_event)
            start = datetime.now(timezone.utc)
            sleep = poll_interval
            candidate, next_phase = plan_tick(height, latest_known.height)
            if next_phase != phase:
                logger.debug("stream_phase", previous=phase.value, phase=next_phase.value)
                phase = next_phase
            logg = logger.bind(height=candidate, latest_known_block=latest_known.height)
            logg.debug("tick")

            if phase is StreamPhase.CATCHING_UP:
                try:
                    block = await self._client.block_at_height(candidate)
                except Exception as e:
                    logg.info("fetch_historical_block_failed", error=str(e))
                    continue
            elif phase is StreamPhase.BACKOFF:
                try:
                    observed = await self._client.latest_block()
                except Exception as e:
                    logg.info("fetch_latest_block_failed", error=str(e))
                    continue
                latest_known, sleep = observe_head(
                    latest_known, observed, poll_interval, self._retry_interval
                )
                continue
            else:
                block = latest_known

            logg.info("block_read", read_sec=(datetime.now(timezone.utc) - start).total_seconds())
            try:
                content = await self._assembler.transactions_for_block(block)
            except TransientIndexingError as e:
                logg.debug("block_not_indexed_yet", error=str(e))
                continue
            except Exception as e:
                logg.warning("block_assembly_failed", error=str(e))
                error = TerminalBlockError(block.height, f"getting transactions: {e}")
                error.__cause__ = e
                await self._emit(
                    BlockResult(block=block, start_time=start, error=error),
                    stop_event,
                    channel,
                )
                height = candidate
                continue

            logg.debug("block_assembled", tx=len(content.transactions), failures=len(content.failures))
            await self._emit(
                BlockResult(
                    block=block,
                    start_time=start,
                    transactions=content.transactions,
                    system_chunk_events=content.system_chunk_events,
                    failures=content.failures,
                ),
                stop_event,
                channel,
            )
            height = candidate
