"""End-to-end tests through the HTTP API."""
import csv
import io

import orjson
import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport

from hooklog.config import Settings
from hooklog.main import create_app

SCENARIO = {"EventType": "BookingCreated", "Driver": {"Callsign": "51"}}


def ingest(client, channel, payload=None, **kwargs):
    if payload is not None:
        kwargs.setdefault("json", payload)
    r = client.post(f"/v1/hooks/{channel}", **kwargs)
    assert r.status_code == 200, r.text
    return r.json()


def test_scenario_any_and_field_path(client):
    created = ingest(client, "tracks", SCENARIO)
    assert created["ok"] is True
    assert created["channel"] == "tracks"

    r = client.get("/v1/channels/tracks/events", params={"field": "any", "value": "51"})
    assert r.status_code == 200
    data = r.json()
    assert data["count"] == 1
    assert data["items"][0]["id"] == created["id"]
    assert data["items"][0]["payload"] == SCENARIO

    r = client.get(
        "/v1/channels/tracks/events",
        params={"field": "payload.Driver.Callsign", "value": "52"},
    )
    assert r.json()["count"] == 0
    assert r.json()["items"] == []


def test_advanced_query_parameter(client):
    ingest(client, "tracks", SCENARIO)
    ingest(client, "tracks", {"EventType": "BookingCancelled", "Driver": {"Callsign": "52"}})

    r = client.get("/v1/channels/tracks/events", params={"q": "callsign:52 cancelled"})
    data = r.json()
    assert data["count"] == 1
    assert data["items"][0]["payload"]["EventType"] == "BookingCancelled"


def test_items_carry_summary_and_meta(client):
    ingest(client, "tracks", SCENARIO, headers={"User-Agent": "Autocab/2.0", "X-Forwarded-For": "203.0.113.9, 10.0.0.1"})

    item = client.get("/v1/channels/tracks/events").json()["items"][0]
    assert item["meta"]["ip"] == "203.0.113.9"
    assert item["meta"]["userAgent"] == "Autocab/2.0"
    assert item["meta"]["contentType"] == "application/json"
    assert "receivedAt" in item
    assert item["summary"]["eventType"] == "BookingCreated"
    assert item["summary"]["keys"] == ["EventType", "Driver"]
    assert item["summary"]["kind"] == "json"


def test_non_json_body_is_kept_raw(client):
    body = "CALLSIGN=51&STATUS=CLEAR"
    created = ingest(client, "tracks", content=body, headers={"Content-Type": "text/plain"})

    item = client.get(f"/v1/channels/tracks/events/{created['id']}").json()["item"]
    assert item["payload"] == {"_raw": body}


def test_json_in_text_body_is_parsed(client):
    created = ingest(client, "tracks", content='  {"a": 1}  ', headers={"Content-Type": "text/plain"})

    item = client.get(f"/v1/channels/tracks/events/{created['id']}").json()["item"]
    assert item["payload"] == {"a": 1}


@pytest.mark.parametrize("body", ["", "   ", "null"])
def test_empty_body_is_marked(client, body):
    created = ingest(client, "tracks", content=body, headers={"Content-Type": "text/plain"})

    item = client.get(f"/v1/channels/tracks/events/{created['id']}").json()["item"]
    assert item["payload"] == {"_empty": True}


def test_non_object_json_payload(client):
    created = ingest(client, "tracks", [1, 2, 3])

    item = client.get(f"/v1/channels/tracks/events/{created['id']}").json()["item"]
    assert item["payload"] == [1, 2, 3]


def test_malformed_json_is_rejected(client):
    r = client.post(
        "/v1/hooks/tracks",
        content=b"{invalid json}",
        headers={"Content-Type": "application/json"},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "InvalidJSON"
    assert client.get("/v1/channels/tracks/events").json()["count"] == 0


def test_oversized_body_is_rejected(client, settings):
    r = client.post(
        "/v1/hooks/tracks",
        content=b"x" * (settings.MAX_BODY_SIZE + 1),
        headers={"Content-Type": "text/plain"},
    )
    assert r.status_code == 413
    assert r.json()["error"] == "PayloadTooLarge"
    assert r.json()["max_size"] == settings.MAX_BODY_SIZE


NOT_FOUND = {"ok": False, "error": "Not found"}


@pytest.mark.parametrize("channel", ["bad%20name", "-leading", "x" * 65, "%2A", "tracks%0A"])
def test_invalid_channel_is_not_found(client, channel, data_dir):
    r = client.post(f"/v1/hooks/{channel}", json=SCENARIO)
    assert r.status_code == 404
    assert r.json() == NOT_FOUND
    assert not data_dir.exists() or list(data_dir.iterdir()) == []


def test_disallowed_channel_is_not_found(data_dir):
    app = create_app(Settings(_env_file=None, DATA_DIR=data_dir, ALLOWED_CHANNELS="tracks", LOG_JSON=False))
    with TestClient(app) as client:
        r = client.post("/v1/hooks/jobs", json=SCENARIO)
        assert r.status_code == 404
        assert r.json() == NOT_FOUND

        r = client.get("/v1/channels/jobs/events")
        assert r.status_code == 404
        assert r.json() == NOT_FOUND

        assert client.post("/v1/hooks/tracks", json=SCENARIO).status_code == 200


def test_get_event_not_found(client):
    ingest(client, "tracks", SCENARIO)
    r = client.get("/v1/channels/tracks/events/missing-id")
    assert r.status_code == 404
    assert r.json() == NOT_FOUND


def test_get_event_across_channels(client):
    created = ingest(client, "jobs", SCENARIO)
    r = client.get(f"/v1/channels/*/events/{created['id']}")
    assert r.status_code == 200
    assert r.json()["item"]["channel"] == "jobs"


def test_wildcard_query_merges_channels(client):
    first = ingest(client, "tracks", {"n": 1})
    second = ingest(client, "jobs", {"n": 2})
    third = ingest(client, "tracks", {"n": 3})

    data = client.get("/v1/channels/*/events").json()
    assert data["channel"] == "*"
    assert data["count"] == 3
    ids = [item["id"] for item in data["items"]]
    assert set(ids) == {first["id"], second["id"], third["id"]}
    # newest tracks event precedes the older one
    assert ids.index(third["id"]) < ids.index(first["id"])


def test_limit_and_count(client):
    for i in range(5):
        ingest(client, "tracks", {"n": i})

    data = client.get("/v1/channels/tracks/events", params={"limit": 2}).json()
    assert data["count"] == 5
    assert [item["payload"]["n"] for item in data["items"]] == [4, 3]

    unlimited = client.get("/v1/channels/tracks/events", params={"limit": 0}).json()
    assert len(unlimited["items"]) == 5


def test_channels_and_fields(client):
    ingest(client, "tracks", SCENARIO)
    ingest(client, "jobs", SCENARIO)

    assert client.get("/v1/channels").json()["channels"] == ["*", "jobs", "tracks"]

    fields = client.get("/v1/fields").json()["fields"]
    assert "any" in fields
    assert "fulltext" in fields
    assert "payload.Driver.Callsign" in fields


def test_export_ndjson(client):
    ingest(client, "tracks", SCENARIO)
    ingest(client, "tracks", {"EventType": "Other"})

    r = client.get("/v1/channels/tracks/export", params={"format": "ndjson", "q": "callsign:51"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/x-ndjson")
    disposition = r.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="hooklog-tracks-filtered-')
    assert disposition.endswith('.ndjson"')
    assert r.headers["x-export-count"] == "1"

    lines = r.content.decode().splitlines()
    assert len(lines) == 1
    assert orjson.loads(lines[0])["payload"] == SCENARIO


def test_export_csv_all_channels(client):
    ingest(client, "tracks", SCENARIO)

    r = client.get("/v1/channels/*/export", params={"format": "csv"})
    assert r.status_code == 200
    assert 'filename="hooklog-all-' in r.headers["content-disposition"]

    rows = list(csv.reader(io.StringIO(r.text, newline="")))
    assert rows[0] == ["receivedAt", "id", "channel", "ip", "contentType", "userAgent", "payloadJson"]
    assert rows[1][2] == "tracks"


def test_export_rejects_unknown_format(client):
    assert client.get("/v1/channels/tracks/export", params={"format": "xml"}).status_code == 422


def test_clear_channel(client, data_dir):
    ingest(client, "tracks", SCENARIO)
    ingest(client, "jobs", SCENARIO)

    r = client.delete("/v1/channels/tracks/events")
    assert r.json() == {"ok": True, "cleared": ["tracks"]}
    assert not (data_dir / "tracks.ndjson").exists()
    assert client.get("/v1/channels/tracks/events").json()["count"] == 0
    assert client.get("/v1/channels/jobs/events").json()["count"] == 1


def test_clear_all(client):
    ingest(client, "tracks", SCENARIO)
    ingest(client, "jobs", SCENARIO)

    r = client.delete("/v1/channels/*/events")
    assert r.json()["cleared"] == ["jobs", "tracks"]
    assert client.get("/v1/channels").json()["channels"] == ["*"]


def test_events_survive_restart(settings):
    with TestClient(create_app(settings)) as first:
        created = ingest(first, "tracks", SCENARIO)

    with TestClient(create_app(settings)) as second:
        r = second.get(f"/v1/channels/tracks/events/{created['id']}")
        assert r.status_code == 200
        assert r.json()["item"]["payload"] == SCENARIO


def test_storage_failure_is_surfaced(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    app = create_app(Settings(_env_file=None, DATA_DIR=blocker, LOG_JSON=False))

    with TestClient(app) as client:
        r = client.post("/v1/hooks/tracks", json=SCENARIO)
        assert r.status_code == 503
        assert r.json()["error"] == "StorageError"
        assert client.get("/v1/channels/tracks/events").json()["count"] == 0


@pytest.mark.asyncio
async def test_async_client_round_trip(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        r = await client.post("/v1/hooks/tracks", json=SCENARIO)
        assert r.status_code == 200
        event_id = r.json()["id"]

        r = await client.get(f"/v1/channels/tracks/events/{event_id}")
        assert r.status_code == 200
        assert r.json()["item"]["channel"] == "tracks"


def test_reading_unknown_channel_leaves_no_trace(client):
    r = client.get("/v1/channels/ghost/events")
    assert r.status_code == 200
    assert r.json()["count"] == 0
    assert client.get("/v1/channels/ghost/events/some-id").status_code == 404

    assert client.get("/v1/channels").json()["channels"] == ["*"]
    r = client.delete("/v1/channels/*/events")
    assert r.status_code == 200
    assert r.json()["cleared"] == []


def test_unencodable_payload_is_rejected(client, monkeypatch):
    from hooklog.api import ingest_router

    monkeypatch.setattr(ingest_router, "decode_body", lambda body: {"n": 2**70})
    r = client.post("/v1/hooks/tracks", json={"n": 1})
    assert r.status_code == 422
    assert r.json()["ok"] is False
    assert r.json()["error"] == "UnserializablePayload"

    monkeypatch.undo()
    assert client.get("/v1/channels/tracks/events").json()["count"] == 0


def test_wide_integers_are_stored_as_floats(client):
    created = ingest(
        client,
        "tracks",
        content=b'{"n": 123456789012345678901234567890}',
        headers={"Content-Type": "application/json"},
    )
    item = client.get(f"/v1/channels/tracks/events/{created['id']}").json()["item"]
    assert isinstance(item["payload"]["n"], float)
