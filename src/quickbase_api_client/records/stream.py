"""Record stream backed by a producer thread and a bounded queue."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Iterator, Mapping
from types import TracebackType
from typing import NoReturn

import httpx

from ..config import StreamConfig
from ..core.errors import QuickBasePartialStreamError, describe_cause
from ..core.tokens import XmlToken, iter_tokens
from ..core.transport import SyncTransport
from ..core.transport_shared import wrap_network_error
from .decoder import EnvelopeDecoder, iter_records, open_envelope
from .models import Record

logger = logging.getLogger("quickbase_api_client")

_END = object()


def _iter_body(response: httpx.Response, *, action: str) -> Iterator[bytes]:
    try:
        yield from response.iter_bytes()
    except httpx.HTTPError as exc:
        raise wrap_network_error(exc, action=action) from exc


class RecordStream(Iterator[Record]):
    """Records decoded while the HTTP response body is still being read.

    One producer thread owns the response after the first ``record`` tag
    and hands records over through a queue of ``channel_capacity`` slots.
    An error found after that point is raised from ``__next__`` as
    :class:`QuickBasePartialStreamError` once every earlier record has been
    delivered. ``cancel()``/``close()`` close the response, which also
    interrupts a read in progress, and end the sequence.
    """

    def __init__(
        self,
        response: httpx.Response,
        tokens: Iterator[XmlToken],
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
        self._poll_interval = config.poll_interval_seconds
        self._queue: queue.Queue[object] = queue.Queue(maxsize=config.channel_capacity)
        self._cancelled = threading.Event()
        self._done = threading.Event()
        self._release_lock = threading.Lock()
        self._released = False
        self._outcome: QuickBasePartialStreamError | None = None
        self._exhausted = False
        self._thread = threading.Thread(
            target=self._produce,
            name="quickbase-record-stream",
            daemon=True,
        )

    def start(self) -> "RecordStream":
        self._thread.start()
        return self

    @property
    def records_emitted(self) -> int:
        return self._decoder.records_emitted

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def released(self) -> bool:
        return self._released

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the producer has finished and released the response."""

        return self._done.wait(timeout)

    def cancel(self) -> None:
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        logger.warning(
            "record stream cancelled action=%s records=%s",
            self._action,
            self._decoder.records_emitted,
        )
        # unblocks a producer stuck in a read
        self._release()

    def close(self) -> None:
        self._exhausted = True
        if not self._done.is_set():
            self.cancel()

    def __iter__(self) -> "RecordStream":
        return self

    def __next__(self) -> Record:
        if self._exhausted:
            raise StopIteration
        while True:
            try:
                item = self._queue.get(timeout=self._poll_interval)
            except queue.Empty:
                if self._done.is_set() and self._queue.empty():
                    self._finish()
                continue
            if item is _END:
                self._finish()
            return item  # type: ignore[return-value]

    def _finish(self) -> NoReturn:
        self._exhausted = True
        if self._outcome is not None and not self._cancelled.is_set():
            raise self._outcome
        raise StopIteration

    def __enter__(self) -> "RecordStream":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        self.close()
        return False

    def _produce(self) -> None:
        try:
            for record in iter_records(self._decoder, self._cancellable(self._tokens)):
                if not self._send(record):
                    return
            if not self._cancelled.is_set():
                logger.info(
                    "record stream complete action=%s records=%s",
                    self._action,
                    self._decoder.records_emitted,
                )
        except Exception as exc:
            if self._cancelled.is_set():
                return
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
            self._release()
            self._done.set()
            try:
                self._queue.put_nowait(_END)
            except queue.Full:
                # consumer falls back to the done flag
                pass

    def _cancellable(self, tokens: Iterator[XmlToken]) -> Iterator[XmlToken]:
        for token in tokens:
            if self._cancelled.is_set():
                return
            yield token

    def _send(self, record: Record) -> bool:
        deadline = time.monotonic() + self._send_timeout
        while not self._cancelled.is_set():
            try:
                self._queue.put(record, timeout=self._poll_interval)
                return True
            except queue.Full:
                if time.monotonic() < deadline:
                    continue
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
            return False
        return False

    def _release(self) -> None:
        with self._release_lock:
            if self._released:
                return
            self._released = True
        self._response.close()
        logger.debug("record stream released action=%s", self._action)


def open_record_stream(
    transport: SyncTransport,
    url: str,
    params: Mapping[str, str],
    *,
    structured: bool = False,
    action: str = "API_DoQuery",
) -> RecordStream:
    """Start a streaming query.

    The envelope up to the first record is read in the calling thread, so a
    status error reported before any record fails the call itself.
    """

    response = transport.open_stream(url, action, params)
    decoder = EnvelopeDecoder(structured=structured, action=action)
    tokens = iter_tokens(_iter_body(response, action=action))
    try:
        open_envelope(decoder, tokens)
    except BaseException as exc:
        logger.error(
            "record stream failed before first record action=%s error=%s",
            action,
            exc.__class__.__name__,
        )
        response.close()
        raise
    return RecordStream(
        response,
        tokens,
        decoder,
        config=transport.config.stream,
        action=action,
    ).start()


__all__ = [
    "RecordStream",
    "open_record_stream",
]
