"""
Shared fixtures for the harness tests
"""
import threading
import pytest
from kafka_harness.cluster_orchestrator import KafkaOrchestrator
from kafka_harness.errors import KafkaHarnessError
from kafka_harness.models import ClusterConfig, Endpoint
from kafka_harness.node_driver import BaseNodeDriver


class FakeNodeDriver(BaseNodeDriver):
    """In-memory node driver that records every call it receives"""

    def __init__(self, host: str = "localhost", report_endpoints: bool = True):
        super().__init__()
        self.host = host
        self.report_endpoints = report_endpoints
        self.calls = []
        self.running = set()
        self.start_failures = {}
        self.stop_failures = {}
        self.on_start = None
        self.on_stop = None
        self.closed = False
        self.close_error = None
        self._lock = threading.Lock()

    def prepare(self, cluster_id):
        super().prepare(cluster_id)
        self._record(('prepare', cluster_id))

    def start(self, node_id, leases):
        self._record(('start', node_id))
        if self.on_start is not None:
            self.on_start(node_id, leases)
        failure = self.start_failures.get(node_id)
        if failure is not None:
            raise failure
        with self._lock:
            self.running.add(node_id)
        if not self.report_endpoints:
            return {}
        return {listener: Endpoint(self.host, lease.port) for listener, lease in leases.items()}

    def stop(self, node_id, termination_style):
        self._record(('stop', node_id, termination_style))
        if self.on_stop is not None:
            self.on_stop(node_id, termination_style)
        failure = self.stop_failures.get((node_id, termination_style), self.stop_failures.get(node_id))
        if failure is not None:
            raise failure
        with self._lock:
            self.running.discard(node_id)

    def close(self):
        self._record(('close',))
        self.closed = True
        if self.close_error is not None:
            raise self.close_error

    def fail_start(self, node_id, error):
        self.start_failures[node_id] = error

    def fail_stop(self, node_id, error, termination_style=None):
        key = node_id if termination_style is None else (node_id, termination_style)
        self.stop_failures[key] = error

    def calls_named(self, name):
        with self._lock:
            return [call for call in self.calls if call[0] == name]

    def _record(self, call):
        with self._lock:
            self.calls.append(call)


@pytest.fixture
def fake_driver():
    return FakeNodeDriver()


@pytest.fixture
def make_orchestrator(fake_driver):
    """Factory building orchestrators on the fake driver, closed at teardown"""
    created = []

    def _make(**config_overrides):
        config = ClusterConfig(**config_overrides)
        orchestrator = KafkaOrchestrator(config, fake_driver)
        created.append(orchestrator)
        return orchestrator

    yield _make

    for orchestrator in created:
        try:
            orchestrator.close()
        except KafkaHarnessError:
            pass
