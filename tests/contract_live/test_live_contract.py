from __future__ import annotations

import os

import pytest

from quickbase_api_client import QuickBaseClient, QuickBaseClientConfig, RecordQuery
from quickbase_api_client.core.errors import QuickBaseApiError


pytestmark = pytest.mark.live

_REQUIRED_ENV = (
    "QUICKBASE_URL",
    "QUICKBASE_USERNAME",
    "QUICKBASE_PASSWORD",
    "QUICKBASE_TABLE_DBID",
    "QUICKBASE_APP_DBID",
)


def _require_live_flag() -> None:
    if os.getenv("QUICKBASE_RUN_LIVE") != "1":
        pytest.skip("Set QUICKBASE_RUN_LIVE=1 to run live contract tests")
    missing = [name for name in _REQUIRED_ENV if not os.getenv(name)]
    if missing:
        pytest.skip(f"missing environment: {', '.join(missing)}")


def _live_client() -> QuickBaseClient:
    cfg = QuickBaseClientConfig(base_url=os.environ["QUICKBASE_URL"])
    cfg.validate()
    return QuickBaseClient(config=cfg)


def _sign_in(client: QuickBaseClient):
    return client.authenticate(
        os.environ["QUICKBASE_USERNAME"],
        os.environ["QUICKBASE_PASSWORD"],
        app_token=os.getenv("QUICKBASE_APP_TOKEN"),
    )


def test_live_authenticate_and_count_contract_minimum():
    _require_live_flag()
    with _live_client() as client:
        credential = _sign_in(client)
        count = client.records.do_query_count(credential, os.environ["QUICKBASE_TABLE_DBID"])

    assert credential.ticket
    assert count >= 0


def test_live_stream_matches_buffered_query():
    _require_live_flag()
    table_id = os.environ["QUICKBASE_TABLE_DBID"]
    query = RecordQuery(table_id, clist=[3], options="num-5", structured=True)
    with _live_client() as client:
        credential = _sign_in(client)
        buffered = client.records.do_structured_query(credential, query)
        with client.records.query_stream(credential, query) as stream:
            streamed = list(stream)

    assert streamed == buffered
    assert all(3 in record for record in streamed)


def test_live_app_dtm_info_contract_minimum():
    _require_live_flag()
    with _live_client() as client:
        info = client.get_app_dtm_info(os.environ["QUICKBASE_APP_DBID"])

    assert info.app.dbid == os.environ["QUICKBASE_APP_DBID"]
    assert info.next_allowed_time >= info.request_time


def test_live_bad_ticket_is_api_error():
    _require_live_flag()
    with _live_client() as client:
        credential = _sign_in(client)
        bad = type(credential)(
            ticket="not-a-ticket",
            user_id=credential.user_id,
            base_url=credential.base_url,
            app_token=credential.app_token,
        )
        with pytest.raises(QuickBaseApiError) as exc_info:
            client.records.do_query_count(bad, os.environ["QUICKBASE_TABLE_DBID"])

    assert exc_info.value.is_authentication_failure is True
