"""Single-pass decoder for ``API_DoQuery`` response streams.

The decoder is a push state machine: callers feed it XML tokens one at a
time and receive each record as soon as its closing tag has been seen.
It never holds more than the record currently being assembled, and it does
no I/O, so the same machine drives both the threaded and the asyncio record
streams.

Envelope states::

    AWAIT_ENVELOPE -> AWAIT_FIELD <-> ERROR_PENDING
                      AWAIT_FIELD <-> RECORD_ACTIVE
                      AWAIT_FIELD  -> CLOSED

``errcode`` and ``errtext`` may arrive in either order. A non-zero code
moves to ``ERROR_PENDING``; the error is raised as soon as its text is
known, or when a record or the envelope end shows that no text is coming.
"""

from __future__ import annotations

import enum
from collections.abc import AsyncIterator, Iterator

from ..core.errors import QuickBaseError, QuickBaseProtocolError, classify_status
from ..core.models import ApiStatus
from ..core.tokens import CharData, EndTag, StartTag, XmlToken
from ..core.wire import ENVELOPE_TAG
from .models import Record
from .parser import RECORD_TAG, is_line_break

_STATUS_CODE_TAG = "errcode"
_STATUS_TEXT_TAG = "errtext"


class DecoderState(enum.Enum):
    AWAIT_ENVELOPE = "await_envelope"
    AWAIT_FIELD = "await_field"
    ERROR_PENDING = "error_pending"
    RECORD_ACTIVE = "record_active"
    CLOSED = "closed"


class RecordBuilder:
    """Assemble one ``<record>`` element into a field map.

    Feed it every token after the record's start tag. A field ends at its
    own end tag or, implicitly, at the next non-``BR`` start tag seen while
    it is still open; the wire format relies on the latter. ``BR`` inside a
    field contributes ``"\\r"``. In structured mode fields are keyed by
    their integer ``id`` attribute and children without one are dropped;
    otherwise by tag name, where a repeated name overwrites the earlier
    value.
    """

    def __init__(self, *, structured: bool = False) -> None:
        self._structured = structured
        self._values: dict = {}
        self._field_tag: str | None = None
        self._field_key: str | int | None = None
        self._parts: list[str] = []
        self._depth = 0
        self._complete = False

    @property
    def complete(self) -> bool:
        return self._complete

    def feed(self, token: XmlToken) -> Record | None:
        if self._complete:
            raise QuickBaseProtocolError("record is already complete")
        if isinstance(token, StartTag):
            self._depth += 1
            if is_line_break(token.name):
                if self._field_tag is not None:
                    self._parts.append("\r")
                return None
            self._commit()
            self._begin(token)
            return None
        if isinstance(token, EndTag):
            self._depth -= 1
            if self._depth < 0:
                self._commit()
                self._complete = True
                return self._values
            if token.name == self._field_tag:
                self._commit()
            return None
        if self._field_tag is not None:
            self._parts.append(token.text)
        return None

    def _begin(self, token: StartTag) -> None:
        self._field_tag = token.name
        self._parts = []
        if not self._structured:
            self._field_key = token.name
            return
        raw_id = token.attrs.get("id")
        if raw_id is None:
            self._field_key = None
            return
        try:
            self._field_key = int(raw_id)
        except ValueError as exc:
            raise QuickBaseProtocolError(f"field id is not an integer: {raw_id!r}") from exc

    def _commit(self) -> None:
        if self._field_tag is None:
            return
        if self._field_key is not None:
            self._values[self._field_key] = "".join(self._parts)
        self._field_tag = None
        self._field_key = None
        self._parts = []


class EnvelopeDecoder:
    """Validate the ``qdbapi`` envelope and route tokens to records."""

    def __init__(self, *, structured: bool = False, action: str = "API_DoQuery") -> None:
        self._structured = structured
        self._action = action
        self._state = DecoderState.AWAIT_ENVELOPE
        self._depth = 0
        self._capture: str | None = None
        self._capture_parts: list[str] = []
        self._code: int | None = None
        self._text: str | None = None
        self._record: RecordBuilder | None = None
        self._records_emitted = 0

    @property
    def state(self) -> DecoderState:
        return self._state

    @property
    def records_emitted(self) -> int:
        return self._records_emitted

    @property
    def status(self) -> ApiStatus | None:
        if self._code is None:
            return None
        return ApiStatus(code=self._code, text=self._text or "")

    def feed(self, token: XmlToken) -> Record | None:
        """Consume one token; return a record when one has just completed."""

        if self._state is DecoderState.CLOSED:
            return None
        try:
            if self._state is DecoderState.AWAIT_ENVELOPE:
                self._feed_prologue(token)
                return None
            if self._state is DecoderState.RECORD_ACTIVE:
                return self._feed_record(token)
            self._feed_envelope(token)
            return None
        except QuickBaseError:
            self._state = DecoderState.CLOSED
            raise

    def finish(self) -> None:
        """Check that the input ended after a complete envelope."""

        if self._state is not DecoderState.CLOSED:
            state = self._state
            self._state = DecoderState.CLOSED
            raise QuickBaseProtocolError(
                f"response ended before {ENVELOPE_TAG} closed (state={state.value})"
            )

    def _feed_prologue(self, token: XmlToken) -> None:
        if isinstance(token, StartTag):
            if token.name != ENVELOPE_TAG:
                raise QuickBaseProtocolError(f"{ENVELOPE_TAG} expected; {token.name} found")
            self._depth = 1
            self._state = DecoderState.AWAIT_FIELD

    def _feed_envelope(self, token: XmlToken) -> None:
        if isinstance(token, StartTag):
            self._depth += 1
            if token.name == RECORD_TAG:
                if self._state is DecoderState.ERROR_PENDING:
                    raise self._api_error()
                self._record = RecordBuilder(structured=self._structured)
                self._state = DecoderState.RECORD_ACTIVE
            elif self._depth == 2 and token.name in (_STATUS_CODE_TAG, _STATUS_TEXT_TAG):
                self._capture = token.name
                self._capture_parts = []
            return
        if isinstance(token, CharData):
            if self._capture is not None:
                self._capture_parts.append(token.text)
            return
        self._depth -= 1
        if self._capture is not None and self._depth == 1:
            self._finish_capture()
        if self._depth == 0:
            if self._state is DecoderState.ERROR_PENDING:
                raise self._api_error()
            if self._code is None:
                raise QuickBaseProtocolError(f"{_STATUS_CODE_TAG} is missing from response")
            self._state = DecoderState.CLOSED

    def _finish_capture(self) -> None:
        name, value = self._capture, "".join(self._capture_parts)
        self._capture = None
        self._capture_parts = []
        if name == _STATUS_CODE_TAG:
            try:
                self._code = int(value.strip())
            except ValueError as exc:
                raise QuickBaseProtocolError(
                    f"{_STATUS_CODE_TAG} is not numeric: {value!r}"
                ) from exc
            if self._code != 0:
                self._state = DecoderState.ERROR_PENDING
                if self._text is not None:
                    raise self._api_error()
            return
        self._text = value
        if self._state is DecoderState.ERROR_PENDING:
            raise self._api_error()

    def _feed_record(self, token: XmlToken) -> Record | None:
        assert self._record is not None
        record = self._record.feed(token)
        if record is None:
            return None
        self._record = None
        self._depth -= 1
        self._records_emitted += 1
        self._state = DecoderState.AWAIT_FIELD
        return record

    def _api_error(self) -> QuickBaseError:
        code = self._code if self._code is not None else -1
        error = classify_status(code, self._text or "", action=self._action)
        if error is None:
            return QuickBaseProtocolError("status error raised for a success code")
        return error


def open_envelope(decoder: EnvelopeDecoder, tokens: Iterator[XmlToken]) -> bool:
    """Run the envelope phase up to the first record.

    Returns True when a record has started, False when the envelope closed
    without records. Status errors found on the way are raised here.
    """

    for token in tokens:
        decoder.feed(token)
        if decoder.state is DecoderState.RECORD_ACTIVE:
            return True
        if decoder.state is DecoderState.CLOSED:
            return False
    decoder.finish()
    return False


async def aopen_envelope(decoder: EnvelopeDecoder, tokens: AsyncIterator[XmlToken]) -> bool:
    async for token in tokens:
        decoder.feed(token)
        if decoder.state is DecoderState.RECORD_ACTIVE:
            return True
        if decoder.state is DecoderState.CLOSED:
            return False
    decoder.finish()
    return False


def iter_records(decoder: EnvelopeDecoder, tokens: Iterator[XmlToken]) -> Iterator[Record]:
    for token in tokens:
        record = decoder.feed(token)
        if record is not None:
            yield record
    decoder.finish()


async def aiter_records(
    decoder: EnvelopeDecoder,
    tokens: AsyncIterator[XmlToken],
) -> AsyncIterator[Record]:
    async for token in tokens:
        record = decoder.feed(token)
        if record is not None:
            yield record
    decoder.finish()


__all__ = [
    "DecoderState",
    "RecordBuilder",
    "EnvelopeDecoder",
    "open_envelope",
    "aopen_envelope",
    "iter_records",
    "aiter_records",
]
