"""Tests for cross-channel aggregation and ordering."""
from hooklog.aggregator import Aggregator, order_events, timestamp_micros
from hooklog.channels import ChannelPolicy
from hooklog.event_models import Event
from hooklog.query import EventFilter
from hooklog.store import EventStore
from conftest import make_record, write_log


def make_aggregator(data_dir, allowed=None):
    return Aggregator(EventStore(data_dir, max_recent=10), ChannelPolicy(allowed))


def event(event_id, channel, received_at):
    return Event(id=event_id, channel=channel, received_at=received_at, payload={})


def test_list_channels_sorted_and_filtered(data_dir):
    write_log(data_dir, "tracks", [make_record("t1")])
    write_log(data_dir, "Alpha", [make_record("a1")])
    write_log(data_dir, "jobs", [make_record("j1")])
    write_log(data_dir, "bad name", [make_record("b1")])
    write_log(data_dir, "-dash", [make_record("d1")])

    assert make_aggregator(data_dir).list_channels() == ["Alpha", "jobs", "tracks"]


def test_list_channels_applies_allowlist(data_dir):
    write_log(data_dir, "tracks", [make_record("t1")])
    write_log(data_dir, "jobs", [make_record("j1")])

    assert make_aggregator(data_dir, allowed={"tracks"}).list_channels() == ["tracks"]


def test_list_channels_without_data_dir(data_dir):
    assert make_aggregator(data_dir).list_channels() == []


def test_aggregate_merges_newest_first(data_dir):
    write_log(data_dir, "tracks", [
        make_record("t1", "2026-01-01T10:00:00.000Z"),
        make_record("t2", "2026-01-01T12:00:00.000Z"),
    ])
    write_log(data_dir, "jobs", [
        make_record("j1", "2026-01-01T11:00:00.000Z"),
        make_record("j2", "2026-01-01T13:00:00.000Z"),
    ])

    result = make_aggregator(data_dir).aggregate()
    assert [e.id for e in result] == ["j2", "t2", "j1", "t1"]


def test_aggregate_applies_filter(data_dir):
    write_log(data_dir, "tracks", [make_record("t1", payload={"Driver": {"Callsign": "51"}})])
    write_log(data_dir, "jobs", [make_record("j1", payload={"Driver": {"Callsign": "52"}})])

    result = make_aggregator(data_dir).aggregate(EventFilter(q="callsign:51"))
    assert [e.id for e in result] == ["t1"]


def test_equal_timestamps_order_is_deterministic(data_dir):
    stamp = "2026-01-01T12:00:00.000Z"
    write_log(data_dir, "tracks", [make_record("t1", stamp)])
    write_log(data_dir, "jobs", [make_record("j1", stamp)])

    orders = {tuple(e.id for e in make_aggregator(data_dir).aggregate()) for _ in range(5)}
    assert orders == {("j1", "t1")}


def test_tie_break_does_not_depend_on_input_order():
    stamp = "2026-01-01T12:00:00.000Z"
    a = event("a", "alpha", stamp)
    b = event("b", "beta", stamp)

    assert [e.id for e in order_events([b, a])] == ["a", "b"]
    assert [e.id for e in order_events([a, b])] == ["a", "b"]


def test_tie_within_channel_keeps_cache_position():
    stamp = "2026-01-01T12:00:00.000Z"
    newest = event("newest", "tracks", stamp)
    older = event("older", "tracks", stamp)

    assert [e.id for e in order_events([newest, older])] == ["newest", "older"]


def test_unparseable_timestamps_sort_last():
    good = event("good", "tracks", "2020-01-01T00:00:00.000Z")
    bad = event("bad", "tracks", "yesterday")

    assert [e.id for e in order_events([bad, good])] == ["good", "bad"]


def test_timestamp_micros():
    assert timestamp_micros("1970-01-01T00:00:01.500Z") == 1_500_000
    assert timestamp_micros("1970-01-01T00:00:01.500") == 1_500_000
    assert timestamp_micros("garbage") is None


def test_collect_single_channel(data_dir):
    write_log(data_dir, "tracks", [make_record("t1"), make_record("t2")])
    write_log(data_dir, "jobs", [make_record("j1")])

    assert [e.id for e in make_aggregator(data_dir).collect("tracks")] == ["t2", "t1"]
