import os
import shutil
import logging
import subprocess
import threading
from dataclasses import dataclass
from typing import Any, Dict, IO, List, Tuple
from ..errors import DriverStartError, DriverStopError, GracefulStopTimeoutError
from ..models import ClusterConfig, Endpoint, Listener, PortLease, TerminationStyle
from .base import BaseNodeDriver

logger = logging.getLogger(__name__)


@dataclass
class NodeProcess:
    """A broker process spawned by the process driver"""
    node_id: int
    process: subprocess.Popen
    log_handle: IO[bytes]

    @property
    def pid(self) -> int:
        return self.process.pid

    def is_alive(self) -> bool:
        return self.process.poll() is None


class ProcessNodeDriver(BaseNodeDriver):
    """Runs each broker as an OS subprocess launched from the configured node command"""

    def __init__(self, config: ClusterConfig):
        super().__init__()
        self.config = config
        self._lock = threading.Lock()
        self._processes: Dict[int, NodeProcess] = {}

    @property
    def cluster_dir(self) -> str:
        return os.path.join(self.config.base_data_dir, f"cluster-{self.cluster_id or 'standalone'}")

    def create_node_directories(self, node_id: int) -> Tuple[str, str]:
        """Create directories for a node and return its data directory and log file"""
        node_data_dir = os.path.join(self.cluster_dir, f"node-{node_id}", "data")
        log_dir = os.path.join(self.config.base_data_dir, "logs")

        os.makedirs(node_data_dir, exist_ok=True)
        os.makedirs(log_dir, exist_ok=True)

        log_file = os.path.join(log_dir, f"node-{node_id}.log")
        return node_data_dir, log_file

    def placeholders(self, node_id: int, leases: Dict[Listener, PortLease],
                     data_dir: str, log_file: str, config_file: str) -> Dict[str, Any]:
        """Values substituted into the node command and broker properties"""
        values: Dict[str, Any] = {
            'node_id': node_id,
            'cluster_id': self.cluster_id or '',
            'config_file': config_file,
            'data_dir': data_dir,
            'log_file': log_file,
            'host': self.config.advertised_host,
        }
        for listener, lease in leases.items():
            values[f"{listener.value}_port"] = lease.port
        return values

    def build_server_properties(self, node_id: int, leases: Dict[Listener, PortLease],
                                values: Dict[str, Any]) -> Dict[str, str]:
        """
        Build the broker properties for a node.

        This is the single source of truth for node configuration parameters;
        configured broker_properties are applied last.
        """
        ordered = sorted(leases.items(), key=lambda item: self.config.listeners.index(item[0]))
        advertised = [(listener, lease) for listener, lease in ordered if listener != Listener.CONTROLLER]

        properties = {
            'node.id' if self.config.kraft_mode else 'broker.id': str(node_id),
            'listeners': ",".join(
                f"{listener.listener_name}://{self.config.bind_host}:{lease.port}" for listener, lease in ordered
            ),
            'advertised.listeners': ",".join(
                f"{listener.listener_name}://{self.config.advertised_host}:{lease.port}" for listener, lease in advertised
            ),
            'listener.security.protocol.map': ",".join(
                f"{listener.listener_name}:{self.config.listener_security_protocol(listener)}" for listener, _ in ordered
            ),
            'inter.broker.listener.name': Listener.INTERNAL.listener_name,
            'log.dirs': values['data_dir'],
        }
        if self.config.kraft_mode:
            properties['process.roles'] = 'broker,controller'
            properties['controller.listener.names'] = Listener.CONTROLLER.listener_name
        if self.config.is_sasl:
            properties['sasl.enabled.mechanisms'] = (self.config.sasl_mechanism or 'PLAIN').upper()

        for key, value in self.config.broker_properties.items():
            properties[key] = str(value).format_map(values)
        return properties

    def write_server_properties(self, config_file: str, properties: Dict[str, str]) -> None:
        with open(config_file, 'w') as f:
            for key, value in properties.items():
                f.write(f"{key}={value}\n")

    def build_node_command(self, values: Dict[str, Any]) -> List[str]:
        return [arg.format_map(values) for arg in self.config.node_command]

    def start(self, node_id: int, leases: Dict[Listener, PortLease]) -> Dict[Listener, Endpoint]:
        """Spawn the broker process for a node and wait for its client listener"""
        with self._lock:
            existing = self._processes.get(node_id)
            if existing is not None and existing.is_alive():
                raise DriverStartError(node_id, f"Node {node_id} is already running (PID {existing.pid})")
        self._forget(node_id)

        client_lease = leases.get(self.config.client_listener)
        if client_lease is None:
            raise DriverStartError(node_id, f"Node {node_id} has no port for {self.config.client_listener.name}")

        data_dir, log_file = self.create_node_directories(node_id)
        config_file = os.path.join(os.path.dirname(data_dir), "server.properties")
        try:
            values = self.placeholders(node_id, leases, data_dir, log_file, config_file)
            self.write_server_properties(config_file, self.build_server_properties(node_id, leases, values))
            cmd = self.build_node_command(values)
        except (KeyError, ValueError) as e:
            raise DriverStartError(node_id, f"Invalid placeholder in node configuration: {e}") from e

        logger.info(f"Spawning node-{node_id} on port {client_lease.port}")
        log_handle = open(log_file, 'ab')
        try:
            process = subprocess.Popen(cmd, stdout=log_handle, stderr=subprocess.STDOUT)
        except OSError as e:
            log_handle.close()
            raise DriverStartError(node_id, f"Failed to spawn node {node_id}: {e}") from e

        node_process = NodeProcess(node_id=node_id, process=process, log_handle=log_handle)
        with self._lock:
            self._processes[node_id] = node_process
        logger.info(f"Spawned node-{node_id} with PID {process.pid}")

        ready = self.wait_for_port(
            self.config.advertised_host,
            client_lease.port,
            self.config.ready_timeout,
            is_alive=node_process.is_alive
        )
        if not ready:
            self._kill(node_process)
            self._forget(node_id)
            raise DriverStartError(
                node_id,
                f"Node {node_id} failed to become ready within {self.config.ready_timeout:.2f}s, see {log_file}"
            )

        logger.info(f"Node node-{node_id} is active")
        return {listener: Endpoint(self.config.advertised_host, lease.port) for listener, lease in leases.items()}

    def stop(self, node_id: int, termination_style: TerminationStyle) -> None:
        """Terminate a broker process; graceful stops escalate to SIGKILL unless configured not to"""
        with self._lock:
            node_process = self._processes.get(node_id)

        if node_process is None or not node_process.is_alive():
            logger.info(f"Node node-{node_id} is not running")
            self._forget(node_id)
            return

        try:
            if termination_style == TerminationStyle.ABRUPT:
                logger.info(f"Killing node-{node_id} (PID {node_process.pid})")
                self._kill(node_process)
            else:
                self._terminate(node_process)
        except OSError as e:
            raise DriverStopError(node_id, f"Failed to stop node {node_id}: {e}") from e

        self._forget(node_id)
        logger.info(f"node-{node_id} terminated")

    def close(self) -> None:
        """Kill leftover processes and remove the cluster data directory"""
        with self._lock:
            leftovers = list(self._processes.values())

        for node_process in leftovers:
            if node_process.is_alive():
                logger.warning(f"Killing leftover node-{node_process.node_id} (PID {node_process.pid})")
                self._kill(node_process)
            self._forget(node_process.node_id)

        if self.config.enable_cleanup and os.path.exists(self.cluster_dir):
            shutil.rmtree(self.cluster_dir)
            logger.info(f"Deleted data directory {self.cluster_dir}")

    def running_node_ids(self) -> List[int]:
        with self._lock:
            return sorted(node_id for node_id, node_process in self._processes.items() if node_process.is_alive())

    def _terminate(self, node_process: NodeProcess) -> None:
        timeout = self.config.graceful_stop_timeout
        logger.info(f"Terminating node-{node_process.node_id} (PID {node_process.pid})")

        node_process.process.terminate()
        try:
            node_process.process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            if not self.config.escalate_on_timeout:
                raise GracefulStopTimeoutError(node_process.node_id, timeout)
            logger.warning(f"node-{node_process.node_id} did not stop within {timeout:.2f}s, killing it")
            self._kill(node_process)

    def _kill(self, node_process: NodeProcess) -> None:
        node_process.process.kill()
        node_process.process.wait()

    def _forget(self, node_id: int) -> None:
        with self._lock:
            node_process = self._processes.pop(node_id, None)
        if node_process is not None:
            node_process.log_handle.close()
