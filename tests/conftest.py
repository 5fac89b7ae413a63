import json
from unittest.mock import MagicMock

import pytest

from tradedesk.credentials import Credentials, InMemoryCredentialStore
from tradedesk.envelope import HttpResponse

ACCESS_TOKEN = "11111111-2222-4333-8444-555555555555"
SECRET_KEY = "aaaaaaaa-bbbb-4ccc-9ddd-eeeeeeeeeeee"


@pytest.fixture
def credentials():
    return Credentials(ACCESS_TOKEN, SECRET_KEY)


@pytest.fixture
def store(credentials):
    return InMemoryCredentialStore(credentials)


def ok_response(**fields):
    return HttpResponse(status=200, text=json.dumps({"result": "success", **fields}))


@pytest.fixture
def transport():
    """Blocking transport double that answers every send with a success envelope."""
    fake = MagicMock()
    fake.send.return_value = ok_response()
    return fake
