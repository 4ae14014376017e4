from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from quickbase_api_client.core.models import Credential  # noqa: E402

BASE_URL = "https://example.quickbase.com"


@pytest.fixture
def credential() -> Credential:
    return Credential(ticket="T-1", user_id="u1", base_url=BASE_URL)


@pytest.fixture
def app_credential(credential: Credential) -> Credential:
    return credential.with_app_token("APP-1")
