from __future__ import annotations

import base64
import io

import httpx
import pytest

from quickbase_api_client.core.errors import (
    QuickBaseApiError,
    QuickBaseProtocolError,
    QuickBaseValidationError,
)
from quickbase_api_client.core.wire import decode_document, decode_params
from quickbase_api_client.records.async_service import AsyncRecordService
from quickbase_api_client.records.queries import RecordQuery
from tests.shared.payloads import make_envelope, make_label_query_response, make_structured_body
from tests.shared.transport import build_async_transport, xml_response


def _service(*responses):
    transport, handler = build_async_transport(list(responses))
    return AsyncRecordService(transport), handler


@pytest.mark.asyncio
async def test_async_do_query_returns_label_records(credential):
    service, handler = _service(xml_response(make_label_query_response([{"name": "A\rB"}])))
    records = await service.do_query(credential, RecordQuery("bq1", structured=True))

    assert records == [{"name": "A\rB"}]
    assert "fmt" not in decode_params(handler.last_request.content)


@pytest.mark.asyncio
async def test_async_do_structured_query_returns_field_id_records(credential):
    body = make_envelope(make_structured_body([{3: "7", 6: "x\ry"}]))
    service, handler = _service(xml_response(body))
    records = await service.do_structured_query(credential, RecordQuery("bq1", clist=[3, 6]))

    assert records == [{3: "7", 6: "x\ry"}]
    params = decode_params(handler.last_request.content)
    assert params["fmt"] == "structured"
    assert params["clist"] == "3.6"


@pytest.mark.asyncio
async def test_async_do_query_count(credential):
    service, handler = _service(xml_response(make_envelope("<numMatches>12</numMatches>")))
    assert await service.do_query_count(credential, "bq1", "{'7'.EX.'a'}") == 12
    assert handler.last_request.headers["QUICKBASE-ACTION"] == "API_DoQueryCount"


@pytest.mark.asyncio
async def test_async_add_record_keeps_carriage_returns(app_credential):
    body = make_envelope("<rid>41</rid><update_id>1</update_id>", action="API_AddRecord")
    service, handler = _service(xml_response(body))

    assert await service.add_record(app_credential, "bq1", {"notes": "one\rtwo"}) == 41
    params = decode_params(handler.last_request.content)
    assert params == {"ticket": "T-1", "apptoken": "APP-1", "_fnm_notes": "one\rtwo"}


@pytest.mark.asyncio
async def test_async_edit_delete_and_change_owner_send_rid(credential):
    service, handler = _service(
        xml_response(make_envelope(action="API_EditRecord")),
        xml_response(make_envelope(action="API_DeleteRecord")),
        xml_response(make_envelope(action="API_ChangeRecordOwner")),
    )
    await service.edit_record(credential, "bq1", 5, {"status": "done"})
    await service.delete_record(credential, "bq1", 6)
    await service.change_record_owner(credential, "bq1", 7, "jo@example.com")

    actions = [request.headers["QUICKBASE-ACTION"] for request in handler.requests]
    assert actions == ["API_EditRecord", "API_DeleteRecord", "API_ChangeRecordOwner"]
    bodies = [decode_params(request.content) for request in handler.requests]
    assert bodies[0]["rid"] == "5"
    assert bodies[0]["_fnm_status"] == "done"
    assert bodies[1] == {"ticket": "T-1", "rid": "6"}
    assert bodies[2]["newowner"] == "jo@example.com"


@pytest.mark.asyncio
async def test_async_delete_missing_record_surfaces_api_error(credential):
    service, _ = _service(xml_response(make_envelope(errcode=30, errtext="No such record")))
    with pytest.raises(QuickBaseApiError) as exc_info:
        await service.delete_record(credential, "bq1", 99)
    assert exc_info.value.code == 30


@pytest.mark.asyncio
async def test_async_invalid_rid_is_rejected_before_request(credential):
    service, handler = _service()
    with pytest.raises(QuickBaseValidationError):
        await service.edit_record(credential, "bq1", 0, {"a": "b"})
    assert handler.requests == []


@pytest.mark.asyncio
async def test_async_user_roles_targets_app_db(credential):
    body = make_envelope('<users><user id="1.ab"><name>Jo</name></user></users>')
    service, handler = _service(xml_response(body))
    users = await service.user_roles(credential, "bapp1")

    assert [(user.id, user.name) for user in users] == [("1.ab", "Jo")]
    assert str(handler.last_request.url) == "https://example.quickbase.com/db/bapp1"


@pytest.mark.asyncio
async def test_async_upload_file_reads_source_in_chunks(credential):
    payload = bytes(range(256)) * 40
    service, handler = _service(xml_response(make_envelope(action="API_EditRecord")))
    await service.upload_file(
        credential, "bq1", 5, 9, "report.pdf", io.BytesIO(payload), chunk_size=100
    )

    request = handler.last_request
    assert request.headers["QUICKBASE-ACTION"] == "API_EditRecord"
    tree = decode_document(request.content)
    assert tree.findtext("rid") == "5"
    field = tree.find("field")
    assert field.get("fid") == "9"
    assert field.get("filename") == "report.pdf"
    assert base64.b64decode(field.text) == payload


@pytest.mark.asyncio
async def test_async_download_file_writes_attachment(credential):
    response = httpx.Response(
        200,
        headers={"Content-Type": "application/octet-stream"},
        content=b"file-bytes",
    )
    service, handler = _service(response)
    dest = io.BytesIO()

    assert await service.download_file(credential, "bq1", 5, 9, dest) == 10
    assert dest.getvalue() == b"file-bytes"
    request = handler.last_request
    assert request.method == "GET"
    assert request.url.path == "/up/bq1/a/r5/e9/v0"
    assert request.url.params["ticket"] == "T-1"


@pytest.mark.asyncio
async def test_async_iter_results_csv_success_envelope_is_protocol_error(credential):
    service, _ = _service(xml_response(make_envelope(action="API_GenResultsTable")))
    with pytest.raises(QuickBaseProtocolError):
        async for _ in service.iter_results_csv(credential, "bq1", [3]):
            pass


@pytest.mark.asyncio
async def test_async_import_from_csv_returns_counts(credential):
    body = make_envelope(
        "<num_recs_input>2</num_recs_input><num_recs_added>1</num_recs_added>"
        "<num_recs_updated>1</num_recs_updated><rids><rid>8</rid><rid>3</rid></rids>",
        action="API_ImportFromCSV",
    )
    service, handler = _service(xml_response(body))
    result = await service.import_from_csv(credential, "bq1", [6, 7], "a,b\nc,d\n")

    assert (result.num_input, result.num_added, result.num_updated) == (2, 1, 1)
    assert result.rids == (8, 3)
    params = decode_params(handler.last_request.content)
    assert "skipfirst" not in params
    assert params["clist"] == "6.7"
