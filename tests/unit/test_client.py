from __future__ import annotations

import pytest

from quickbase_api_client.client import QuickBaseClient
from quickbase_api_client.config import QuickBaseClientConfig, StreamConfig
from quickbase_api_client.core.errors import QuickBaseClientClosedError, QuickBaseValidationError
from quickbase_api_client.records.params import DEFAULT_UPLOAD_CHUNK_SIZE
from tests.shared.client_fakes import DummyTransport, FakeRecordService, UploadRecordingService
from tests.shared.payloads import make_envelope


def test_client_context_manager_closes_transport():
    transport = DummyTransport()
    with QuickBaseClient(transport=transport) as client:
        assert client is not None
    assert transport.closed is True


def test_client_authenticate_posts_to_main_db_and_returns_credential():
    transport = DummyTransport()
    with QuickBaseClient(transport=transport) as client:
        credential = client.authenticate("jo@example.com", "secret")

    url, action, params = transport.calls[0]
    assert url == "https://www.quickbase.com/db/main"
    assert action == "API_Authenticate"
    assert params == {"username": "jo@example.com", "password": "secret"}
    assert credential.ticket == "T-1"
    assert credential.user_id == "u1"
    assert credential.base_url == "https://www.quickbase.com"


def test_client_authenticate_accepts_realm_url_and_app_token():
    transport = DummyTransport()
    with QuickBaseClient(transport=transport) as client:
        credential = client.authenticate(
            "jo@example.com",
            "secret",
            app_token="APP-1",
            base_url="https://acme.quickbase.com",
        )
    assert transport.calls[0][0] == "https://acme.quickbase.com/db/main"
    assert credential.base_url == "https://acme.quickbase.com"
    assert credential.app_token == "APP-1"


@pytest.mark.parametrize(
    ("username", "password"),
    [("", "secret"), ("   ", "secret"), ("jo@example.com", "")],
    ids=["empty-user", "blank-user", "empty-password"],
)
def test_client_authenticate_validates_before_request(username, password):
    transport = DummyTransport()
    with QuickBaseClient(transport=transport) as client:
        with pytest.raises(QuickBaseValidationError):
            client.authenticate(username, password)
    assert transport.calls == []


def test_client_get_app_dtm_info_targets_main_db():
    transport = DummyTransport(
        make_envelope(
            "<RequestTime>1000</RequestTime><RequestNextAllowedTime>2000</RequestNextAllowedTime>"
            '<app id="bapp1"><lastModifiedTime>3000</lastModifiedTime>'
            "<lastRecModTime>4000</lastRecModTime></app><tables/>",
            action="API_GetAppDTMInfo",
        )
    )
    with QuickBaseClient(transport=transport) as client:
        info = client.get_app_dtm_info("bapp1")

    url, action, params = transport.calls[0]
    assert url.endswith("/db/main")
    assert action == "API_GetAppDTMInfo"
    assert params == {"dbid": "bapp1"}
    assert info.app.dbid == "bapp1"
    assert info.tables == ()


def test_client_raises_when_used_after_close(credential):
    client = QuickBaseClient(transport=DummyTransport())
    client.close()
    with pytest.raises(QuickBaseClientClosedError):
        client.records.do_query_count(credential, "bq1")
    with pytest.raises(QuickBaseClientClosedError):
        client.authenticate("jo@example.com", "secret")


def test_client_delegates_to_injected_record_service(credential):
    delegate = FakeRecordService()
    with QuickBaseClient(transport=DummyTransport(), record_service=delegate) as client:
        assert client.records.do_query_count(credential, "bq1") == 7
    assert delegate.count_calls == 1


def test_client_csv_iter_raises_client_closed_error_when_closed_mid_iteration(credential):
    client = QuickBaseClient(transport=DummyTransport(), record_service=FakeRecordService())
    iterator = client.records.iter_results_csv(credential, "bq1", [3])
    assert next(iterator) == b"a,b\n"
    client.close()
    with pytest.raises(QuickBaseClientClosedError):
        next(iterator)


def test_client_rejects_invalid_config():
    config = QuickBaseClientConfig(stream=StreamConfig(channel_capacity=0))
    with pytest.raises(QuickBaseValidationError):
        QuickBaseClient(config=config, transport=DummyTransport())


def test_client_upload_forwards_chunk_size(credential):
    delegate = UploadRecordingService()
    with QuickBaseClient(transport=DummyTransport(), record_service=delegate) as client:
        client.records.upload_file(credential, "bq1", 5, 9, "a.bin", b"x", chunk_size=300)
        client.records.upload_file(credential, "bq1", 6, 9, "b.bin", b"y")
    assert delegate.uploads == [("bq1", 5, 9, 300), ("bq1", 6, 9, DEFAULT_UPLOAD_CHUNK_SIZE)]
