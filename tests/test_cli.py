"""Tests for CLI commands and helper functions."""

import json
import uuid

import pytest
from click.testing import CliRunner

from email_dispatch.cli import main, run_async
from email_dispatch.core import EmailDispatchCore
from email_dispatch.transport import TransportError


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


SEND_ARGS = [
    "send",
    "--owner-ref", "svc-1",
    "--from", "a@x.com",
    "--to", "b@x.com",
    "--subject", "hi",
    "--text", "hello",
]


@pytest.fixture
def core(tmp_path):
    return EmailDispatchCore(transport=DummyTransport(), db_path=str(tmp_path / "cli.db"))


@pytest.fixture
def invoke(core):
    runner = CliRunner()

    def _invoke(args):
        return runner.invoke(main, args, obj={"settings": {"log_level": "INFO"}, "core": core})

    return _invoke


def test_run_async():
    async def async_func():
        return 42

    assert run_async(async_func()) == 42


def test_send_records_sent_email(invoke, core):
    result = invoke(SEND_ARGS + ["--json"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["status"] == "SENT"
    assert uuid.UUID(data["id"])
    assert core.transport.calls == [("a@x.com", "b@x.com", "hi", "hello")]


def test_send_with_failing_transport_still_records(invoke, core):
    core.transport.fail = True

    result = invoke(SEND_ARGS)

    assert result.exit_code == 0
    records = run_async(core.list_all())
    assert [r.status.value for r in records] == ["ERROR"]


def test_send_rejects_invalid_address(invoke, core):
    args = list(SEND_ARGS)
    args[args.index("b@x.com")] = "nobody"

    result = invoke(args)

    assert result.exit_code == 2
    assert core.transport.calls == []


def test_list_and_show(invoke, core):
    for _ in range(3):
        assert invoke(SEND_ARGS).exit_code == 0

    paged = invoke(["list", "--size", "2", "--json"])
    assert paged.exit_code == 0
    page = json.loads(paged.output)
    assert len(page["content"]) == 2
    assert page["totalElements"] == 3

    everything = invoke(["list", "--all", "--json"])
    records = json.loads(everything.output)
    assert len(records) == 3

    shown = invoke(["show", records[0]["id"], "--json"])
    assert shown.exit_code == 0
    assert json.loads(shown.output) == records[0]

    table = invoke(["list"])
    assert table.exit_code == 0
    assert "Emails" in table.output


def test_list_empty_page(invoke):
    result = invoke(["list", "--page", "3"])
    assert result.exit_code == 0
    assert "No emails on page 3" in result.output


def test_list_rejects_unknown_sort(invoke):
    result = invoke(["list", "--sort", "nope"])
    assert result.exit_code == 2


def test_show_unknown_email(invoke):
    result = invoke(["show", str(uuid.uuid4())])
    assert result.exit_code == 1
