"""Shared fixtures: every test gets its own data directory and application."""
import pytest
import orjson
from fastapi.testclient import TestClient

from hooklog.config import Settings
from hooklog.main import create_app
from hooklog.store import EventStore


def write_log(data_dir, channel, records, extension="ndjson"):
    """Write raw lines (dicts are JSON-encoded, strings written as-is)."""
    data_dir.mkdir(parents=True, exist_ok=True)
    lines = []
    for record in records:
        if isinstance(record, str):
            lines.append(record)
        else:
            lines.append(orjson.dumps(record).decode())
    (data_dir / f"{channel}.{extension}").write_text("\n".join(lines) + "\n", encoding="utf-8")


def make_record(event_id, received_at="2026-01-01T12:00:00.000Z", channel=None, payload=None):
    record = {
        "id": event_id,
        "receivedAt": received_at,
        "meta": {"ip": "10.0.0.1", "userAgent": "test", "contentType": "application/json"},
        "payload": payload if payload is not None else {"n": event_id},
    }
    if channel is not None:
        record["channel"] = channel
    return record


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def settings(data_dir):
    return Settings(
        _env_file=None,
        DATA_DIR=data_dir,
        MAX_RECENT=50,
        LOG_JSON=False,
        MAX_BODY_SIZE=4096,
    )


@pytest.fixture
def store(data_dir):
    return EventStore(data_dir, max_recent=5)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
