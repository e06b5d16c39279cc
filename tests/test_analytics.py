"""Tests for the JSONL routing analytics logger and its registry."""

import json
import threading

import pytest

from tierwise.routing.analytics import (
    AnalyticsEventType,
    AnalyticsRegistry,
    RoutingAnalyticsEvent,
    RoutingAnalyticsLogger,
    create_routing_analytics_logger,
    utc_timestamp,
)
from tierwise.types import IntentComplexity, ModelTierId

from conftest import read_jsonl


def make_event(**overrides) -> RoutingAnalyticsEvent:
    fields = dict(
        event=AnalyticsEventType.ROUTE,
        intent=IntentComplexity.SIMPLE,
        confidence=0.8,
        tier=ModelTierId.T1,
        provider="ollama",
        model="qwen2.5:7b",
        message_length=12,
        prompt_adapted=True,
    )
    fields.update(overrides)
    return RoutingAnalyticsEvent(**fields)


@pytest.fixture
def log_path(tmp_path):
    return tmp_path / "logs" / "routing-analytics.jsonl"


# ═══════════════════════════════════════════════════════════════
# 1. EVENT SHAPE
# ═══════════════════════════════════════════════════════════════

class TestEventShape:

    def test_minimal_event_omits_unset_keys(self):
        d = make_event(ts="2026-01-01T00:00:00.000Z").to_dict()
        assert d == {
            "ts": "2026-01-01T00:00:00.000Z",
            "event": "route",
            "intent": "simple",
            "confidence": 0.8,
            "tier": "t1",
            "provider": "ollama",
            "model": "qwen2.5:7b",
            "messageLength": 12,
            "estimatedCostUsd": None,
            "promptAdapted": True,
        }

    def test_full_event_uses_camel_case(self):
        d = make_event(
            event=AnalyticsEventType.BUDGET_DOWNGRADE,
            tier=ModelTierId.T2,
            original_tier=ModelTierId.T3,
            endpoint="https://api.anthropic.com",
            session_id="s-1",
            channel="telegram",
            latency_ms=950.0,
            response_size=321,
            estimated_cost_usd=0.0015,
            classifier_reason="complex signal accumulation",
        ).to_dict()
        assert d["event"] == "budget_downgrade"
        assert d["originalTier"] == "t3"
        assert d["sessionId"] == "s-1"
        assert d["latencyMs"] == 950.0
        assert d["responseSize"] == 321
        assert d["estimatedCostUsd"] == 0.0015
        assert d["classifierReason"] == "complex signal accumulation"

    def test_timestamp_format(self):
        ts = utc_timestamp()
        assert ts.endswith("Z")
        assert len(ts) == len("2026-01-01T00:00:00.000Z")
        assert make_event().to_dict()["ts"].endswith("Z")


# ═══════════════════════════════════════════════════════════════
# 2. WRITER
# ═══════════════════════════════════════════════════════════════

class TestRoutingAnalyticsLogger:

    def test_writes_one_line_per_event_in_order(self, log_path):
        with RoutingAnalyticsLogger(log_path) as analytics:
            for i in range(5):
                analytics.record(make_event(message_length=i))
        rows = read_jsonl(log_path)
        assert [r["messageLength"] for r in rows] == [0, 1, 2, 3, 4]
        assert analytics.events_logged == 5
        assert analytics.closed

    def test_creates_missing_directories(self, tmp_path):
        path = tmp_path / "a" / "b" / "c" / "events.jsonl"
        with RoutingAnalyticsLogger(path) as analytics:
            analytics.record(make_event())
        assert path.exists()

    def test_appends_never_truncates(self, log_path):
        log_path.parent.mkdir(parents=True)
        log_path.write_text('{"existing": true}\n', encoding="utf-8")
        with RoutingAnalyticsLogger(log_path) as analytics:
            analytics.record(make_event())
        rows = read_jsonl(log_path)
        assert rows[0] == {"existing": True}
        assert rows[1]["event"] == "route"

    def test_accepts_plain_mappings(self, log_path):
        with RoutingAnalyticsLogger(log_path) as analytics:
            analytics.record({"event": "custom", "note": "héllo"})
        raw = log_path.read_text(encoding="utf-8")
        assert "héllo" in raw
        assert json.loads(raw) == {"event": "custom", "note": "héllo"}

    def test_unserializable_events_are_dropped(self, log_path):
        with RoutingAnalyticsLogger(log_path) as analytics:
            analytics.record({"bad": object()})
            analytics.record({"nan": float("nan")})
            analytics.record(make_event())
        assert analytics.events_dropped == 2
        assert analytics.events_logged == 1
        assert len(read_jsonl(log_path)) == 1

    def test_write_failure_is_counted_not_raised(self, tmp_path):
        target = tmp_path / "is-a-directory"
        target.mkdir()
        analytics = RoutingAnalyticsLogger(target)
        analytics.record(make_event())
        assert analytics.flush(timeout=5.0)
        assert analytics.events_dropped == 1
        assert analytics.events_logged == 0
        analytics.close()

    def test_unencodable_event_does_not_stop_later_events(self, log_path):
        """A lone surrogate is dropped; the next event is still written."""
        with RoutingAnalyticsLogger(log_path) as analytics:
            analytics.record(make_event(channel="tele\udcffgram"))
            analytics.record(make_event(session_id="after"))
            assert analytics.flush(timeout=5.0)
        rows = read_jsonl(log_path)
        assert [r.get("sessionId") for r in rows] == ["after"]
        assert analytics.events_dropped == 1
        assert analytics.events_logged == 1

    def test_deeply_nested_mapping_is_dropped(self, log_path):
        nested: dict = {}
        for _ in range(100_000):
            nested = {"x": nested}
        with RoutingAnalyticsLogger(log_path) as analytics:
            analytics.record(nested)
            analytics.record(make_event())
        assert analytics.events_dropped == 1
        assert len(read_jsonl(log_path)) == 1

    def test_writer_survives_failed_write(self, log_path, monkeypatch):
        """An unexpected error while writing one line leaves the writer running."""
        analytics = RoutingAnalyticsLogger(log_path)
        real_append = analytics._append
        calls = []

        def flaky_append(line):
            calls.append(line)
            if len(calls) == 1:
                raise RuntimeError("transient failure")
            real_append(line)

        monkeypatch.setattr(analytics, "_append", flaky_append)
        analytics.record(make_event(session_id="lost"))
        analytics.record(make_event(session_id="kept"))
        assert analytics.flush(timeout=5.0)
        analytics.close()

        rows = read_jsonl(log_path)
        assert [r["sessionId"] for r in rows] == ["kept"]
        assert analytics.events_dropped == 1
        assert analytics.events_logged == 1

    def test_records_racing_close_are_all_accounted_for(self, log_path):
        analytics = RoutingAnalyticsLogger(log_path)
        start = threading.Barrier(5)

        def writer() -> None:
            start.wait()
            for seq in range(200):
                analytics.record({"seq": seq})

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for t in threads:
            t.start()
        start.wait()
        analytics.close()
        for t in threads:
            t.join()

        assert analytics.events_logged + analytics.events_dropped == 800
        written = len(read_jsonl(log_path)) if log_path.exists() else 0
        assert written == analytics.events_logged

    def test_record_after_close_is_dropped(self, log_path):
        analytics = RoutingAnalyticsLogger(log_path)
        analytics.close()
        analytics.record(make_event())
        assert analytics.events_dropped == 1
        assert not log_path.exists()

    def test_flush_without_writes(self, log_path):
        analytics = RoutingAnalyticsLogger(log_path)
        assert analytics.flush(timeout=0.1)
        analytics.close()

    def test_close_is_idempotent(self, log_path):
        analytics = RoutingAnalyticsLogger(log_path)
        analytics.record(make_event())
        analytics.close()
        analytics.close()
        assert len(read_jsonl(log_path)) == 1

    def test_concurrent_writers_keep_per_thread_order(self, log_path):
        analytics = RoutingAnalyticsLogger(log_path)

        def writer(thread_id: int) -> None:
            for seq in range(50):
                analytics.record({"thread": thread_id, "seq": seq})

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        analytics.close()

        rows = read_jsonl(log_path)
        assert len(rows) == 200
        for thread_id in range(4):
            seqs = [r["seq"] for r in rows if r["thread"] == thread_id]
            assert seqs == list(range(50))


# ═══════════════════════════════════════════════════════════════
# 3. REGISTRY
# ═══════════════════════════════════════════════════════════════

class TestAnalyticsRegistry:

    def test_one_logger_per_path(self, tmp_path):
        with AnalyticsRegistry() as registry:
            a = registry.get(tmp_path / "a.jsonl")
            assert registry.get(tmp_path / "a.jsonl") is a
            assert registry.get(tmp_path / "." / "a.jsonl") is a
            assert registry.get(tmp_path / "b.jsonl") is not a
            assert len(registry) == 2

    def test_close_drains_every_logger(self, tmp_path):
        registry = AnalyticsRegistry()
        a = registry.get(tmp_path / "a.jsonl")
        b = registry.get(tmp_path / "b.jsonl")
        a.record(make_event())
        b.record(make_event())
        registry.close()
        assert a.closed and b.closed
        assert len(registry) == 0
        assert len(read_jsonl(tmp_path / "a.jsonl")) == 1
        assert len(read_jsonl(tmp_path / "b.jsonl")) == 1

    def test_closed_logger_is_replaced(self, tmp_path):
        registry = AnalyticsRegistry()
        first = registry.get(tmp_path / "a.jsonl")
        first.close()
        second = registry.get(tmp_path / "a.jsonl")
        assert second is not first
        assert not second.closed
        registry.close()

    def test_flush(self, tmp_path):
        with AnalyticsRegistry() as registry:
            analytics = registry.get(tmp_path / "a.jsonl")
            analytics.record(make_event())
            assert registry.flush(timeout=5.0)
            assert len(read_jsonl(tmp_path / "a.jsonl")) == 1


class TestCreateRoutingAnalyticsLogger:

    def test_disabled_returns_none(self):
        registry = AnalyticsRegistry()
        assert create_routing_analytics_logger(False, registry) is None
        assert len(registry) == 0

    def test_default_path_under_state_dir(self, tmp_path, state_env):
        with AnalyticsRegistry() as registry:
            analytics = create_routing_analytics_logger(True, registry, env=state_env)
            expected = (tmp_path / "state" / "logs" / "routing-analytics.jsonl").resolve()
            assert analytics.file_path == expected

    def test_explicit_path(self, tmp_path):
        with AnalyticsRegistry() as registry:
            path = tmp_path / "custom.jsonl"
            analytics = create_routing_analytics_logger(True, registry, analytics_path=path)
            assert analytics.file_path == path.resolve()
            assert analytics is registry.get(path)
