import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
from ..errors import (
    AlreadyStartedError, ClusterCleanupError, ClusterClosedError, ClusterNotStartedError,
    DriverError, DriverStartError, DriverStopError, GracefulStopTimeoutError,
    LastBrokerRemovalError, MultipleDriverErrors, UnknownOrReusedNodeIdError
)
from ..interfaces import INodeDriver
from ..models import (
    ClusterConfig, ClusterStatus, Listener, NodeRecord, NodeState, NodeStatus,
    PortLease, TerminationStyle
)
from .base import BaseClusterOrchestrator
from .client_config import build_client_configuration
from .port_allocator import PortAllocator

logger = logging.getLogger(__name__)


class KafkaOrchestrator(BaseClusterOrchestrator):
    """
    Owns cluster membership and drives node drivers through their lifecycle.

    Membership bookkeeping happens under a single lock; driver calls are made
    outside it while the node sits in a STARTING or STOPPING state. The port
    allocator is only ever called with the membership lock held.

    close() waits at most settle_timeout for in-flight driver calls. Nodes
    still in transition after that are taken over by close() and stopped
    abruptly; the late driver call then leaves their state alone.
    """

    def __init__(self, config: ClusterConfig, driver: INodeDriver, port_allocator: Optional[PortAllocator] = None):
        super().__init__(config)
        self.driver = driver
        self.port_allocator = port_allocator or PortAllocator(config.bind_host)
        self.settle_timeout = config.ready_timeout + config.graceful_stop_timeout
        self._lock = threading.RLock()
        self._state_changed = threading.Condition(self._lock)
        self._nodes: Dict[int, NodeRecord] = {}
        self._abandoned: Set[int] = set()
        self._next_node_id = 0
        self._cluster_id: Optional[str] = None
        self._starting = False
        self._started = False
        self._closed = False

        for _ in range(config.brokers_num):
            self._register_node()

    def start(self) -> None:
        """Prepare the driver, start every registered node and fix the cluster id"""
        with self._lock:
            self._require_open()
            if self._started or self._starting:
                raise AlreadyStartedError("Cluster has already been started")
            self._starting = True
            cluster_id = self.config.cluster_id or self._generate_cluster_id()

        logger.info(f"Starting cluster {cluster_id} with {self.config.brokers_num} broker(s)")
        try:
            self.driver.prepare(cluster_id)
        except Exception as e:
            logger.error(f"Failed to prepare node driver for cluster {cluster_id}: {e}")
            with self._lock:
                self._starting = False
            if isinstance(e, DriverError):
                raise
            raise DriverStartError(None, f"Failed to prepare cluster {cluster_id}: {type(e).__name__}: {e}") from e

        with self._lock:
            self._starting = False
            self._started = True
            self._cluster_id = cluster_id
            self._require_open()
            targets = [record for _, record in sorted(self._nodes.items()) if record.state == NodeState.UNSTARTED]
            for first, last in self._contiguous_ranges([record.node_id for record in targets]):
                self.port_allocator.allocate(self.config.listeners, first, last)
            for record in targets:
                record.leases = self.port_allocator.get_leases(record.node_id)
                self._transition(record, NodeState.STARTING)

        self._raise_driver_errors([error for _, error in self._start_records(targets) if error is not None])
        logger.info(f"Cluster {cluster_id} is running: {self.get_bootstrap_servers()}")

    def add_broker(self) -> int:
        """Register, lease ports for and start a new broker"""
        with self._lock:
            self._require_open()
            if not self._started:
                raise ClusterNotStartedError("Cannot add a broker before the cluster is started")
            leases = self._lease_ports(self._next_node_id)
            record = self._register_node(leases)
            self._transition(record, NodeState.STARTING)

        error = self._start_node(record)
        if error is not None:
            raise error
        return record.node_id

    def remove_broker(self, node_id: int) -> None:
        """Stop a broker if it is running, release its ports and mark it removed"""
        with self._lock:
            self._require_open()
            record = self._settled_record(node_id)
            self._require_open()
            if not self.config.allow_empty_cluster and self._would_leave_cluster_empty(record):
                raise LastBrokerRemovalError(node_id)

            if record.state != NodeState.RUNNING:
                self._mark_removed(record)
                return
            self._transition(record, NodeState.STOPPING)

        logger.info(f"Removing node {node_id}")
        try:
            self.driver.stop(node_id, TerminationStyle.GRACEFUL)
        except Exception as e:
            logger.error(f"Failed to stop node {node_id} for removal: {e}")
            with self._lock:
                if self._owns(record):
                    self._transition(record, NodeState.RUNNING)
            raise self._wrap_driver_error(e, node_id, DriverStopError)

        with self._lock:
            if self._owns(record):
                self._mark_removed(record)

    def stop_nodes(self, node_id_predicate: Callable[[int], bool],
                   termination_style: TerminationStyle) -> Set[int]:
        """Stop every running node whose id matches the predicate"""
        if not isinstance(termination_style, TerminationStyle):
            raise TypeError(f"termination_style must be a TerminationStyle, got {termination_style!r}")

        with self._lock:
            targets = [
                record for node_id, record in sorted(self._nodes.items())
                if record.state == NodeState.RUNNING and node_id_predicate(node_id)
            ]
            for record in targets:
                self._transition(record, NodeState.STOPPING)

        stopped: Set[int] = set()
        errors: List[DriverError] = []
        for record in targets:
            logger.info(f"Stopping node {record.node_id} ({termination_style.value})")
            try:
                self.driver.stop(record.node_id, termination_style)
            except Exception as e:
                logger.error(f"Failed to stop node {record.node_id}: {e}")
                with self._lock:
                    if self._owns(record):
                        self._transition(record, NodeState.RUNNING)
                errors.append(self._wrap_driver_error(e, record.node_id, DriverStopError))
                continue

            with self._lock:
                if not self._owns(record):
                    continue
                record.endpoints = {}
                if self.config.release_ports_on_stop:
                    self._release_ports(record)
                self._transition(record, NodeState.STOPPED)
            stopped.add(record.node_id)

        self._raise_driver_errors(errors)
        return stopped

    def start_nodes(self, node_id_predicate: Callable[[int], bool]) -> Set[int]:
        """Restart every stopped node whose id matches the predicate"""
        with self._lock:
            self._require_open()
            targets = [
                record for node_id, record in sorted(self._nodes.items())
                if record.state == NodeState.STOPPED and node_id_predicate(node_id)
            ]
            leases = {}
            for record in targets:
                if all(self.port_allocator.contains_port(listener, record.node_id) for listener in self.config.listeners):
                    leases[record.node_id] = self.port_allocator.get_leases(record.node_id)
                else:
                    leases[record.node_id] = self._lease_ports(record.node_id)
            for record in targets:
                record.leases = leases[record.node_id]
                self._transition(record, NodeState.STARTING)

        started: Set[int] = set()
        errors: List[DriverError] = []
        for record, error in self._start_records(targets):
            if error is None:
                started.add(record.node_id)
            else:
                errors.append(error)

        self._raise_driver_errors(errors)
        return started

    def close(self) -> None:
        """Stop every running node, release all leases and close the driver"""
        with self._lock:
            if self._closed:
                logger.debug("Cluster already closed")
                return
            self._closed = True
            settled = self._state_changed.wait_for(
                lambda: not any(record.state.is_transitional for record in self._nodes.values()),
                timeout=self.settle_timeout
            )
            stuck = []
            if not settled:
                stuck = [record for _, record in sorted(self._nodes.items()) if record.state.is_transitional]
                logger.warning(
                    f"Node(s) {', '.join(str(record.node_id) for record in stuck)} still in transition "
                    f"after {self.settle_timeout:.2f}s, stopping them abruptly"
                )
                self._abandoned.update(record.node_id for record in stuck)
            targets = [record for _, record in sorted(self._nodes.items()) if record.state == NodeState.RUNNING]
            for record in targets + stuck:
                self._transition(record, NodeState.STOPPING)

        logger.info(f"Cleaning up cluster {self._cluster_id}")
        errors: List[Exception] = []
        for record in targets:
            error = self._stop_for_close(record)
            if error is not None:
                errors.append(error)
        for record in stuck:
            error = self._stop_abruptly(record, "during cleanup")
            if error is not None:
                errors.append(error)

        with self._lock:
            for record in self._nodes.values():
                if record.state == NodeState.REMOVED:
                    continue
                self._release_ports(record)
                record.endpoints = {}
                if record.state == NodeState.STOPPING:
                    self._transition(record, NodeState.STOPPED)

        try:
            self.driver.close()
        except Exception as e:
            logger.error(f"Failed to close node driver: {e}")
            errors.append(e)

        if errors:
            raise ClusterCleanupError(errors)
        logger.info(f"Cluster {self._cluster_id} cleaned up")

    def get_num_of_brokers(self) -> int:
        with self._lock:
            return sum(1 for record in self._nodes.values() if record.state != NodeState.REMOVED)

    def get_stopped_brokers(self) -> Set[int]:
        with self._lock:
            return {node_id for node_id, record in self._nodes.items() if record.state == NodeState.STOPPED}

    def get_bootstrap_servers(self) -> str:
        with self._lock:
            return ",".join(
                self._client_endpoint(record)
                for _, record in sorted(self._nodes.items())
                if record.state == NodeState.RUNNING
            )

    def get_cluster_id(self) -> Optional[str]:
        with self._lock:
            return self._cluster_id

    def get_kafka_client_configuration(self, user: Optional[str] = None,
                                       password: Optional[str] = None) -> Dict[str, Any]:
        """
        Client configuration for reaching the cluster.

        Without explicit credentials the configured user is used on SASL
        protocols. The result is a new dictionary on every call.
        """
        if (user is None) != (password is None):
            raise ValueError("user and password must be supplied together")
        if user is None and self.config.is_sasl and self.config.user is not None:
            user, password = self.config.user, self.config.password

        return build_client_configuration(
            self.get_bootstrap_servers(),
            self.config.security_protocol,
            sasl_mechanism=self.config.sasl_mechanism,
            user=user,
            password=password,
            extra=self.config.client_properties
        )

    def get_cluster_status(self) -> ClusterStatus:
        """Snapshot of the cluster view"""
        with self._lock:
            nodes = [
                NodeStatus(
                    node_id=node_id,
                    state=record.state,
                    ports={listener: lease.port for listener, lease in record.leases.items()},
                    endpoints={listener: str(endpoint) for listener, endpoint in record.endpoints.items()},
                    start_count=record.start_count
                )
                for node_id, record in sorted(self._nodes.items())
            ]
            return ClusterStatus(
                cluster_id=self._cluster_id,
                bootstrap_servers=self.get_bootstrap_servers(),
                nodes=nodes,
                started=self._started,
                closed=self._closed
            )

    def _register_node(self, leases: Optional[Dict[Listener, PortLease]] = None) -> NodeRecord:
        node_id = self._next_node_id
        self._next_node_id += 1
        record = NodeRecord(node_id=node_id, state=NodeState.UNSTARTED, driver=self.driver, leases=leases or {})
        self._nodes[node_id] = record
        logger.info(f"Registered node {node_id}")
        return record

    def _lease_ports(self, node_id: int) -> Dict[Listener, PortLease]:
        allocated = self.port_allocator.allocate(self.config.listeners, node_id)
        return {listener: node_leases[node_id] for listener, node_leases in allocated.items()}

    def _release_ports(self, record: NodeRecord) -> None:
        self.port_allocator.deallocate(record.node_id)
        record.leases = {}

    def _mark_removed(self, record: NodeRecord) -> None:
        # Leases go first so no removed node ever appears to hold a port
        self._release_ports(record)
        record.endpoints = {}
        self._transition(record, NodeState.REMOVED)

    def _transition(self, record: NodeRecord, state: NodeState) -> None:
        previous = record.state
        record.state = state
        logger.info(f"Node {record.node_id}: {previous.value} -> {state.value}")
        self._state_changed.notify_all()

    def _owns(self, record: NodeRecord) -> bool:
        """False once close() has taken over a node whose driver call outlived the settle timeout"""
        return record.node_id not in self._abandoned

    def _settled_record(self, node_id: int) -> NodeRecord:
        """Look up a node, waiting out any transition already in flight"""
        record = self._nodes.get(node_id)
        if record is None:
            raise UnknownOrReusedNodeIdError(node_id)
        self._state_changed.wait_for(lambda: not record.state.is_transitional)
        if record.state == NodeState.REMOVED:
            raise UnknownOrReusedNodeIdError(node_id, removed=True)
        return record

    def _would_leave_cluster_empty(self, record: NodeRecord) -> bool:
        others = [other for other in self._nodes.values() if other is not record]
        if not self._started:
            return not any(other.state != NodeState.REMOVED for other in others)
        return not any(other.state == NodeState.RUNNING for other in others)

    def _start_records(self, records: List[NodeRecord]) -> List[Tuple[NodeRecord, Optional[Exception]]]:
        if len(records) <= 1:
            return [(record, self._start_node(record)) for record in records]
        with ThreadPoolExecutor(max_workers=len(records)) as executor:
            return list(zip(records, executor.map(self._start_node, records)))

    def _start_node(self, record: NodeRecord) -> Optional[Exception]:
        """Run the driver start for a STARTING node and settle its state"""
        logger.info(f"Starting node {record.node_id}")
        try:
            endpoints = self.driver.start(record.node_id, dict(record.leases))
        except Exception as e:
            logger.error(f"Failed to start node {record.node_id}: {e}")
            with self._lock:
                if self._owns(record):
                    self._transition(record, NodeState.STOPPED)
            return self._wrap_driver_error(e, record.node_id, DriverStartError)

        with self._lock:
            owned = self._owns(record)
            if owned:
                record.endpoints = dict(endpoints or {})
                record.start_count += 1
                self._transition(record, NodeState.RUNNING)
        if owned:
            return None

        logger.warning(f"Node {record.node_id} finished starting after the cluster was closed")
        self._stop_abruptly(record, "after a late start")
        return ClusterClosedError(f"Cluster was closed while node {record.node_id} was starting")

    def _stop_for_close(self, record: NodeRecord) -> Optional[Exception]:
        try:
            self.driver.stop(record.node_id, TerminationStyle.GRACEFUL)
            return None
        except GracefulStopTimeoutError as e:
            logger.warning(f"{e}, stopping abruptly")
        except Exception as e:
            logger.error(f"Failed to stop node {record.node_id} during cleanup: {e}")
            return self._wrap_driver_error(e, record.node_id, DriverStopError)

        return self._stop_abruptly(record, "during cleanup")

    def _stop_abruptly(self, record: NodeRecord, context: str) -> Optional[Exception]:
        try:
            self.driver.stop(record.node_id, TerminationStyle.ABRUPT)
            return None
        except Exception as e:
            logger.error(f"Failed to kill node {record.node_id} {context}: {e}")
            return self._wrap_driver_error(e, record.node_id, DriverStopError)

    def _client_endpoint(self, record: NodeRecord) -> str:
        listener = self.config.client_listener
        endpoint = record.endpoints.get(listener)
        if endpoint is not None:
            return str(endpoint)
        return f"{self.config.advertised_host}:{record.leases[listener].port}"

    def _require_open(self) -> None:
        if self._closed:
            raise ClusterClosedError("Cluster has been closed")

    @staticmethod
    def _raise_driver_errors(errors: List[Exception]) -> None:
        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise MultipleDriverErrors(errors)

    @staticmethod
    def _wrap_driver_error(error: Exception, node_id: int, error_class) -> DriverError:
        if isinstance(error, DriverError):
            return error
        wrapped = error_class(node_id, f"Node {node_id}: {type(error).__name__}: {error}")
        wrapped.__cause__ = error
        return wrapped
