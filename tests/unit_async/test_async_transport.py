from __future__ import annotations

import httpx
import pytest

from quickbase_api_client.core.errors import QuickBaseApiError, QuickBaseTransportError
from quickbase_api_client.core.wire import decode_params
from tests.shared.payloads import make_envelope
from tests.shared.transport import build_async_transport, xml_response

URL = "https://example.quickbase.com/db/bq1"


@pytest.mark.asyncio
async def test_async_call_returns_tree_and_sends_action_header():
    transport, handler = build_async_transport(
        [xml_response(make_envelope("<numMatches>3</numMatches>"))]
    )
    tree = await transport.call(URL, "API_DoQueryCount", {"ticket": "T-1"})

    assert tree.findtext("numMatches") == "3"
    assert handler.last_request.headers["QUICKBASE-ACTION"] == "API_DoQueryCount"
    assert decode_params(handler.last_request.content) == {"ticket": "T-1"}
    await transport.close()


@pytest.mark.asyncio
async def test_async_call_maps_errcode_to_api_error():
    body = make_envelope(errcode=22, errtext="Sign in required")
    transport, _ = build_async_transport([xml_response(body)])
    with pytest.raises(QuickBaseApiError) as exc_info:
        await transport.call(URL, "API_DoQuery", {})
    assert exc_info.value.code == 22
    assert exc_info.value.is_authentication_failure is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "step",
    [
        httpx.ConnectError("refused"),
        httpx.Response(502, headers={"Content-Type": "text/plain"}, content=b"bad gateway"),
    ],
    ids=["network", "http-502"],
)
async def test_async_call_failures_are_transport_errors(step):
    transport, _ = build_async_transport([step])
    with pytest.raises(QuickBaseTransportError):
        await transport.call(URL, "API_DoQuery", {})


@pytest.mark.asyncio
async def test_async_transport_rejects_use_after_close():
    transport, handler = build_async_transport([xml_response(make_envelope())])
    await transport.close()
    await transport.close()
    with pytest.raises(QuickBaseTransportError):
        await transport.call(URL, "API_DoQuery", {})
    assert handler.requests == []
