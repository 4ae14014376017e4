"""Record stream backed by an asyncio producer task and a bounded queue."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Mapping
from types import TracebackType
from typing import NoReturn

import httpx

from ..config import StreamConfig
from ..core.async_transport import AsyncTransport
from ..core.errors import QuickBasePartialStreamError, describe_cause
from ..core.tokens import XmlToken, aiter_tokens
from ..core.transport_shared import wrap_network_error
from .decoder import EnvelopeDecoder, aiter_records, aopen_envelope
from .models import Record

logger = logging.getLogger("quickbase_api_client")

_END = object()


async def _aiter_body(response: httpx.Response, *, action: str) -> AsyncIterator[bytes]:
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    except httpx.HTTPError as exc:
        raise wrap_network_error(exc, action=action) from exc


class AsyncRecordStream(AsyncIterator[Record]):
    """Async counterpart of :class:`~.stream.RecordStream`."""

    def __init__(
        self,
        response: httpx.Response,
        tokens: AsyncIterator[XmlToken],
        decoder: EnvelopeDecoder,
        *,
        config: StreamConfig,
        action: str = "API_DoQuery",
    ) -> None:
        self._response = response
        self._tokens = tokens
        self._decoder = decoder
        self._action = action
        self._send_timeout = config.send_timeout_seconds
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=config.channel_capacity)
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False
        self._released = False
        self._outcome: QuickBasePartialStreamError | None = None
        self._exhausted = False

    def start(self) -> "AsyncRecordStream":
        self._task = asyncio.get_running_loop().create_task(
            self._produce(),
            name="quickbase-record-stream",
        )
        return self

    @property
    def records_emitted(self) -> int:
        return self._decoder.records_emitted

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def released(self) -> bool:
        return self._released

    async def wait(self) -> None:
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.shield(self._task)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        logger.warning(
            "record stream cancelled action=%s records=%s",
            self._action,
            self._decoder.records_emitted,
        )
        if self._task is not None:
            self._task.cancel()

    async def aclose(self) -> None:
        self._exhausted = True
        if self._task is not None and not self._task.done():
            self.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        await self._release()

    def __aiter__(self) -> "AsyncRecordStream":
        return self

    async def __anext__(self) -> Record:
        if self._exhausted:
            raise StopAsyncIteration
        assert self._task is not None
        if self._queue.empty() and self._task.done():
            self._finish()
        getter = asyncio.ensure_future(self._queue.get())
        done, _ = await asyncio.wait({getter, self._task}, return_when=asyncio.FIRST_COMPLETED)
        if getter in done:
            item = getter.result()
        else:
            getter.cancel()
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                self._finish()
        if item is _END:
            self._finish()
        return item  # type: ignore[return-value]

    def _finish(self) -> NoReturn:
        self._exhausted = True
        if self._outcome is not None and not self._cancelled:
            raise self._outcome
        raise StopAsyncIteration

    async def __aenter__(self) -> "AsyncRecordStream":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        await self.aclose()
        return False

    async def _produce(self) -> None:
        try:
            async for record in aiter_records(self._decoder, self._tokens):
                try:
                    await asyncio.wait_for(self._queue.put(record), timeout=self._send_timeout)
                except asyncio.TimeoutError:
                    emitted = self._decoder.records_emitted
                    logger.warning(
                        "record stream consumer stalled; abandoning action=%s records=%s",
                        self._action,
                        emitted,
                    )
                    self._outcome = QuickBasePartialStreamError(
                        f"consumer did not receive a record within {self._send_timeout}s",
                        records_emitted=emitted,
                        cause="abandoned",
                    )
                    return
            logger.info(
                "record stream complete action=%s records=%s",
                self._action,
                self._decoder.records_emitted,
            )
        except asyncio.CancelledError:
            logger.debug("record stream producer cancelled action=%s", self._action)
            raise
        except Exception as exc:
            emitted = self._decoder.records_emitted
            logger.error(
                "record stream failed action=%s records=%s error=%s",
                self._action,
                emitted,
                exc.__class__.__name__,
            )
            failure = QuickBasePartialStreamError(
                f"record stream ended after {emitted} record(s): {exc}",
                records_emitted=emitted,
                cause=describe_cause(exc),
                http_status=self._response.status_code,
            )
            failure.__cause__ = exc
            self._outcome = failure
        finally:
            await self._release()
            if not self._queue.full():
                self._queue.put_nowait(_END)

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        await self._response.aclose()
        logger.debug("record stream released action=%s", self._action)


async def open_async_record_stream(
    transport: AsyncTransport,
    url: str,
    params: Mapping[str, str],
    *,
    structured: bool = False,
    action: str = "API_DoQuery",
) -> AsyncRecordStream:
    response = await transport.open_stream(url, action, params)
    decoder = EnvelopeDecoder(structured=structured, action=action)
    tokens = aiter_tokens(_aiter_body(response, action=action))
    try:
        await aopen_envelope(decoder, tokens)
    except BaseException as exc:
        logger.error(
            "record stream failed before first record action=%s error=%s",
            action,
            exc.__class__.__name__,
        )
        await response.aclose()
        raise
    return AsyncRecordStream(
        response,
        tokens,
        decoder,
        config=transport.config.stream,
        action=action,
    ).start()


__all__ = [
    "AsyncRecordStream",
    "open_async_record_stream",
]
