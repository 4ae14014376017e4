from __future__ import annotations

import pytest

from quickbase_api_client.core.errors import QuickBaseApiError, QuickBaseProtocolError
from quickbase_api_client.core.tokens import EndTag, XmlToken, iter_tokens
from quickbase_api_client.records.decoder import (
    DecoderState,
    EnvelopeDecoder,
    RecordBuilder,
    iter_records,
    open_envelope,
)
from tests.shared.payloads import (
    make_envelope,
    make_label_query_response,
    make_structured_body,
    split_bytes,
)


def _record_tokens(xml: bytes) -> list[XmlToken]:
    # drop the leading <record> start tag, as the envelope decoder does
    return list(iter_tokens([xml]))[1:]


def _build(xml: bytes, *, structured: bool = False):
    builder = RecordBuilder(structured=structured)
    result = None
    for token in _record_tokens(xml):
        result = builder.feed(token)
    assert builder.complete
    return result


def _decode(body: bytes, *, structured: bool = False, chunk: int | None = None):
    decoder = EnvelopeDecoder(structured=structured)
    chunks = split_bytes(body, chunk) if chunk else [body]
    return list(iter_records(decoder, iter_tokens(chunks))), decoder


def test_builder_joins_fragments_with_carriage_return_at_line_breaks():
    record = _build(b"<record><notes>first<BR/>second<BR/>third</notes></record>")
    assert record == {"notes": "first\rsecond\rthird"}


def test_builder_treats_next_start_tag_as_field_boundary():
    record = _build(
        b"<record><name>alpha<status>open</status></name><owner>bo</owner></record>"
    )
    assert record == {"name": "alpha", "status": "open", "owner": "bo"}


def test_builder_label_collision_keeps_last_value():
    record = _build(b"<record><foo_>one</foo_><foo_>two</foo_></record>")
    assert record == {"foo_": "two"}


def test_builder_keeps_empty_fields():
    record = _build(b"<record><a/><b></b></record>")
    assert record == {"a": "", "b": ""}


def test_builder_structured_mode_keys_by_field_id_and_skips_unidentified_children():
    record = _build(
        b'<record rid="1"><f id="3">42</f><f id="6">x<BR/>y</f><update_id>9</update_id></record>',
        structured=True,
    )
    assert record == {3: "42", 6: "x\ry"}


def test_builder_rejects_non_numeric_field_id():
    builder = RecordBuilder(structured=True)
    with pytest.raises(QuickBaseProtocolError):
        for token in _record_tokens(b'<record><f id="x">1</f></record>'):
            builder.feed(token)


def test_builder_refuses_tokens_after_completion():
    builder = RecordBuilder()
    tokens = _record_tokens(b"<record><a>1</a></record>")
    for token in tokens:
        builder.feed(token)
    with pytest.raises(QuickBaseProtocolError):
        builder.feed(tokens[0])


@pytest.mark.parametrize("chunk", [None, 1, 7])
def test_decoder_yields_all_records_in_server_order(chunk):
    rows = [{"record_id_": str(i), "name": f"row {i}"} for i in range(1, 6)]
    records, decoder = _decode(make_label_query_response(rows), chunk=chunk)

    assert records == rows
    assert decoder.records_emitted == 5
    assert decoder.state is DecoderState.CLOSED
    assert decoder.status is not None and decoder.status.ok


def test_decoder_handles_structured_records_nested_in_table():
    body = make_envelope(make_structured_body([{3: "42", 6: "a"}, {3: "43", 6: "b"}]))
    records, _ = _decode(body, structured=True)
    assert records == [{3: "42", 6: "a"}, {3: "43", 6: "b"}]


@pytest.mark.parametrize(
    "status",
    [
        b"<errcode>4</errcode><errtext>Bad ticket</errtext>",
        b"<errtext>Bad ticket</errtext><errcode>4</errcode>",
    ],
    ids=["code-first", "text-first"],
)
def test_decoder_raises_api_error_regardless_of_code_text_order(status):
    with pytest.raises(QuickBaseApiError) as exc_info:
        _decode(b"<qdbapi>" + status + b"</qdbapi>")
    assert exc_info.value.code == 4
    assert exc_info.value.text == "Bad ticket"
    assert exc_info.value.action == "API_DoQuery"


def test_error_before_records_fails_open_envelope_with_no_records():
    body = make_envelope("<record><a>1</a></record>", errcode=31, errtext="No such field")
    decoder = EnvelopeDecoder()
    with pytest.raises(QuickBaseApiError):
        open_envelope(decoder, iter_tokens([body]))
    assert decoder.records_emitted == 0
    assert decoder.state is DecoderState.CLOSED


def test_pending_error_is_raised_when_a_record_starts_before_errtext():
    body = b"<qdbapi><errcode>2</errcode><record><a>1</a></record><errtext>late</errtext></qdbapi>"
    decoder = EnvelopeDecoder()
    with pytest.raises(QuickBaseApiError) as exc_info:
        open_envelope(decoder, iter_tokens([body]))
    assert exc_info.value.code == 2
    assert exc_info.value.text == ""


def test_pending_error_without_text_is_raised_at_envelope_close():
    with pytest.raises(QuickBaseApiError):
        _decode(b"<qdbapi><errcode>1</errcode></qdbapi>")


def test_open_envelope_stops_at_first_record():
    body = make_label_query_response([{"a": "1"}, {"a": "2"}])
    decoder = EnvelopeDecoder()
    tokens = iter_tokens([body])

    assert open_envelope(decoder, tokens) is True
    assert decoder.state is DecoderState.RECORD_ACTIVE
    assert list(iter_records(decoder, tokens)) == [{"a": "1"}, {"a": "2"}]


def test_open_envelope_reports_empty_result():
    decoder = EnvelopeDecoder()
    assert open_envelope(decoder, iter_tokens([make_envelope()])) is False
    assert decoder.state is DecoderState.CLOSED


def test_error_after_records_surfaces_after_emitted_records():
    body = (
        b"<qdbapi><record><a>1</a></record><record><a>2</a></record>"
        b"<errcode>75</errcode><errtext>Report too large</errtext></qdbapi>"
    )
    decoder = EnvelopeDecoder()
    seen = []
    with pytest.raises(QuickBaseApiError) as exc_info:
        for record in iter_records(decoder, iter_tokens([body])):
            seen.append(record)
    assert seen == [{"a": "1"}, {"a": "2"}]
    assert exc_info.value.code == 75


def test_unexpected_root_is_protocol_error():
    with pytest.raises(QuickBaseProtocolError, match="qdbapi expected; html found"):
        _decode(b"<html><record/></html>")


def test_missing_errcode_is_protocol_error():
    with pytest.raises(QuickBaseProtocolError, match="errcode"):
        _decode(b"<qdbapi><record><a>1</a></record></qdbapi>")


def test_finish_before_envelope_close_is_protocol_error():
    decoder = EnvelopeDecoder()
    for token in iter_tokens([b"<qdbapi><errcode>0</errcode></qdbapi>"]):
        if token == EndTag("qdbapi"):
            break
        decoder.feed(token)
    with pytest.raises(QuickBaseProtocolError, match="before qdbapi closed"):
        decoder.finish()


def test_tokens_after_close_are_ignored():
    records, decoder = _decode(make_envelope())
    assert records == []
    assert decoder.feed(next(iter(iter_tokens([b"<x/>"])))) is None
