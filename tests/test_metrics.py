"""Tests for the Prometheus sink."""

import pytest

from prometheus_client import CollectorRegistry

from modemmonitor.metrics import PrometheusSink, parse_address, start_metrics_server
from modemmonitor.states import State


@pytest.fixture
def registry():
    return CollectorRegistry()


def test_state_gauge(registry):
    sink = PrometheusSink(registry)
    sink.set_state(State.RESETTING)
    assert registry.get_sample_value("modem_monitor_state") == 2
    sink.set_state(State.OPERATING)
    assert registry.get_sample_value("modem_monitor_state") == 0


def test_counters(registry):
    sink = PrometheusSink(registry)
    sink.count_transition()
    sink.count_reset()
    sink.count_reset()
    sink.count_ping(True)
    sink.count_ping(False)
    sink.count_ping(False)

    assert registry.get_sample_value("modem_monitor_state_transitions_total") == 1
    assert registry.get_sample_value("modem_monitor_resets_total") == 2
    assert registry.get_sample_value("modem_monitor_ping_success_total") == 1
    assert registry.get_sample_value("modem_monitor_ping_failure_total") == 2


def test_each_sink_has_its_own_registry():
    first, second = PrometheusSink(), PrometheusSink()
    first.count_reset()
    assert second.registry.get_sample_value("modem_monitor_resets_total") == 0


@pytest.mark.parametrize("addr, expected", [
    (":9090", ("0.0.0.0", 9090)),
    ("9100", ("0.0.0.0", 9100)),
    ("127.0.0.1:8000", ("127.0.0.1", 8000)),
    ("[::1]:9090", ("::1", 9090)),
])
def test_parse_address(addr, expected):
    assert parse_address(addr) == expected


@pytest.mark.parametrize("addr", ["localhost:http", ":99999", "host:"])
def test_parse_bad_address(addr):
    with pytest.raises(ValueError):
        parse_address(addr)


def test_start_metrics_server(monkeypatch, registry):
    calls = []
    monkeypatch.setattr("modemmonitor.metrics.start_http_server",
                        lambda port, addr, registry: calls.append((port, addr, registry)))
    start_metrics_server("127.0.0.1:9099", registry)
    assert calls == [(9099, "127.0.0.1", registry)]
