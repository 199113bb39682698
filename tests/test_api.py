import asyncio
import types
import uuid

import pytest
from fastapi.testclient import TestClient

from email_dispatch.api import API_TOKEN_HEADER_NAME, create_app
from email_dispatch.core import EmailDispatchCore
from email_dispatch.persistence import PersistenceError
from email_dispatch.prometheus import EmailMetrics
from email_dispatch.transport import TransportError


API_TOKEN = "secret-token"

VALID_PAYLOAD = {
    "ownerRef": "svc-1",
    "emailFrom": "a@x.com",
    "emailTo": "b@x.com",
    "subject": "hi",
    "text": "hello",
}


class DummyTransport:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    async def send(self, email_from, email_to, subject, text):
        self.calls.append((email_from, email_to, subject, text))
        if self.fail:
            raise TransportError("connection refused")

    async def close(self):
        return None


class BrokenStoreService:
    metrics = types.SimpleNamespace(generate_latest=lambda: b"metrics-data")

    async def send_and_record(self, request):
        raise PersistenceError("database is locked")


def make_core(tmp_path, fail: bool = False) -> EmailDispatchCore:
    core = EmailDispatchCore(
        transport=DummyTransport(fail=fail),
        db_path=str(tmp_path / "api.db"),
        metrics=EmailMetrics(),
    )
    asyncio.run(core.init())
    return core


@pytest.fixture
def core(tmp_path):
    return make_core(tmp_path)


@pytest.fixture
def client(core):
    return TestClient(create_app(core))


def test_submit_email_with_working_transport(client, core):
    response = client.post("/sending-email", json=VALID_PAYLOAD)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "SENT"
    assert uuid.UUID(body["id"])
    assert body["ownerRef"] == "svc-1"
    assert body["emailFrom"] == "a@x.com"
    assert body["emailTo"] == "b@x.com"
    assert body["subject"] == "hi"
    assert body["text"] == "hello"
    assert body["sentAt"]
    assert core.transport.calls == [("a@x.com", "b@x.com", "hi", "hello")]


def test_submit_email_with_failing_transport(tmp_path):
    client = TestClient(create_app(make_core(tmp_path, fail=True)))

    response = client.post("/sending-email", json=VALID_PAYLOAD)

    assert response.status_code == 201
    assert response.json()["status"] == "ERROR"


@pytest.mark.parametrize(
    "override",
    [
        {"emailTo": ""},
        {"emailTo": "not-an-email"},
        {"emailFrom": "   "},
        {"ownerRef": ""},
        {"subject": "  "},
        {"text": None},
    ],
)
def test_submit_email_rejects_invalid_payload(client, core, override):
    response = client.post("/sending-email", json={**VALID_PAYLOAD, **override})

    assert response.status_code == 400
    assert isinstance(response.json()["detail"], list)
    assert core.transport.calls == []
    assert client.get("/emails/all").json() == []


def test_submit_email_rejects_missing_field(client, core):
    payload = dict(VALID_PAYLOAD)
    payload.pop("subject")

    response = client.post("/sending-email", json=payload)

    assert response.status_code == 400
    assert core.transport.calls == []


def test_submit_email_reports_persistence_failure():
    client = TestClient(create_app(BrokenStoreService()))

    response = client.post("/sending-email", json=VALID_PAYLOAD)

    assert response.status_code == 500
    assert response.json() == {"detail": "Email was not recorded"}


def test_get_email_by_id(client):
    created = client.post("/sending-email", json=VALID_PAYLOAD).json()

    response = client.get(f"/emails/{created['id']}")

    assert response.status_code == 200
    assert response.json() == created


def test_get_email_by_id_not_found(client):
    response = client.get(f"/emails/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["detail"] == "Email not found."


def test_get_email_by_id_rejects_malformed_id(client):
    response = client.get("/emails/not-a-uuid")
    assert response.status_code == 400


def test_list_all_emails(client):
    for _ in range(3):
        client.post("/sending-email", json=VALID_PAYLOAD)

    response = client.get("/emails/all")

    assert response.status_code == 200
    assert len(response.json()) == 3


def test_list_emails_paged_defaults(client):
    for _ in range(12):
        client.post("/sending-email", json=VALID_PAYLOAD)

    response = client.get("/emails")

    assert response.status_code == 200
    body = response.json()
    ids = [item["id"] for item in body["content"]]
    assert len(ids) == 5
    assert ids == sorted(ids, reverse=True)
    assert body["page"] == 0
    assert body["size"] == 5
    assert body["totalElements"] == 12
    assert body["totalPages"] == 3
    assert body["sort"] == "id"
    assert body["direction"] == "desc"


def test_list_emails_page_beyond_data_is_empty(client):
    client.post("/sending-email", json=VALID_PAYLOAD)

    response = client.get("/emails", params={"page": 4, "size": 5})

    assert response.status_code == 200
    assert response.json()["content"] == []


def test_list_emails_custom_sort(client):
    for subject in ("b", "a", "c"):
        client.post("/sending-email", json={**VALID_PAYLOAD, "subject": subject})

    response = client.get("/emails", params={"sort": "subject,asc", "size": 10})

    assert [item["subject"] for item in response.json()["content"]] == ["a", "b", "c"]


@pytest.mark.parametrize(
    "params",
    [{"page": -1}, {"size": 0}, {"sort": "nope"}, {"direction": "up"}],
)
def test_list_emails_rejects_invalid_paging(client, params):
    response = client.get("/emails", params=params)
    assert response.status_code == 400


def test_token_is_enforced_when_configured(core):
    client = TestClient(create_app(core, api_token=API_TOKEN))

    assert client.get("/health").json() == {"status": "ok"}

    response = client.get("/emails/all")
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or missing API token"

    response = client.post("/sending-email", json=VALID_PAYLOAD, headers={API_TOKEN_HEADER_NAME: "wrong"})
    assert response.status_code == 401
    assert core.transport.calls == []

    response = client.get("/emails/all", headers={API_TOKEN_HEADER_NAME: API_TOKEN})
    assert response.status_code == 200


def test_metrics_endpoint_counts_outcomes(client):
    client.post("/sending-email", json=VALID_PAYLOAD)

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "eds_sent_total 1.0" in response.text


def test_returns_500_when_service_missing():
    client = TestClient(create_app(None))
    response = client.get("/emails/all")
    assert response.status_code == 500
    assert response.json()["detail"] == "Service not initialized"


def test_list_emails_huge_page_index_is_empty(client):
    client.post("/sending-email", json=VALID_PAYLOAD)

    response = client.get("/emails", params={"page": 2 * 10**18})

    assert response.status_code == 200
    assert response.json()["content"] == []


def test_submitted_text_is_not_trimmed(client, core):
    body = "Hello,\n\n  indented line\n"

    created = client.post("/sending-email", json={**VALID_PAYLOAD, "text": body}).json()

    assert core.transport.calls[0][3] == body
    assert client.get(f"/emails/{created['id']}").json()["text"] == body
