"""
Core data models for the Kafka test cluster harness
"""
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional
from enum import Enum


class Listener(Enum):
    """Logical network endpoint roles a broker exposes"""
    EXTERNAL = "external"  # Client listener, uses the configured security protocol
    ANON = "anon"  # Anonymous plaintext client listener
    INTERNAL = "internal"  # Inter-broker traffic
    CONTROLLER = "controller"  # KRaft controller quorum

    @property
    def listener_name(self) -> str:
        """Name used for this listener in broker properties"""
        return self.name


class TerminationStyle(Enum):
    """How a node is stopped"""
    GRACEFUL = "graceful"  # Driver may flush and shut down cleanly, bounded by a timeout
    ABRUPT = "abrupt"  # Killed without cooperation, simulates a crash


class NodeState(Enum):
    """Lifecycle state of a cluster node"""
    UNSTARTED = "unstarted"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    REMOVED = "removed"

    @property
    def is_transitional(self) -> bool:
        return self in (NodeState.STARTING, NodeState.STOPPING)


SECURITY_PROTOCOLS = ("PLAINTEXT", "SSL", "SASL_PLAINTEXT", "SASL_SSL")


@dataclass(frozen=True)
class Endpoint:
    """A live address reported by a node driver"""
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class PortLease:
    """A port confirmed free at the OS level, reserved for one (listener, node id) pair"""
    listener: Listener
    node_id: int
    port: int
    generation: int
    leased_at: float


@dataclass
class ClusterConfig:
    """Configuration for a Kafka test cluster"""
    brokers_num: int = 1
    kraft_mode: bool = True
    security_protocol: str = "PLAINTEXT"
    sasl_mechanism: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    client_listener: Listener = Listener.EXTERNAL
    advertised_host: str = "localhost"
    bind_host: str = ""
    allow_empty_cluster: bool = False
    release_ports_on_stop: bool = False
    graceful_stop_timeout: float = 30.0
    escalate_on_timeout: bool = True
    ready_timeout: float = 60.0
    cluster_id: Optional[str] = None
    base_data_dir: str = "/tmp/kafka-harness"
    node_command: List[str] = field(default_factory=lambda: ["kafka-server-start.sh", "{config_file}"])
    broker_properties: Dict[str, str] = field(default_factory=dict)
    client_properties: Dict[str, Any] = field(default_factory=dict)
    enable_cleanup: bool = True

    @property
    def listeners(self) -> List[Listener]:
        """Listeners every node gets a port for, in a stable order"""
        listeners = [Listener.EXTERNAL, Listener.ANON, Listener.INTERNAL]
        if self.kraft_mode:
            listeners.append(Listener.CONTROLLER)
        return listeners

    @property
    def is_sasl(self) -> bool:
        return self.security_protocol.startswith("SASL_")

    def listener_security_protocol(self, listener: Listener) -> str:
        """Security protocol used on the given listener"""
        if listener == Listener.EXTERNAL:
            return self.security_protocol
        return "PLAINTEXT"


@dataclass
class NodeRecord:
    """One cluster member, owned by the orchestrator"""
    node_id: int
    state: NodeState
    driver: Any
    leases: Dict[Listener, PortLease] = field(default_factory=dict)
    endpoints: Dict[Listener, Endpoint] = field(default_factory=dict)
    start_count: int = 0


@dataclass
class NodeStatus:
    """Point-in-time view of a single node"""
    node_id: int
    state: NodeState
    ports: Dict[Listener, int]
    endpoints: Dict[Listener, str]
    start_count: int = 0


@dataclass
class ClusterStatus:
    """Point-in-time view of the whole cluster"""
    cluster_id: Optional[str]
    bootstrap_servers: str
    nodes: List[NodeStatus]
    started: bool
    closed: bool

    @property
    def running_nodes(self) -> List[int]:
        return [node.node_id for node in self.nodes if node.state == NodeState.RUNNING]

    @property
    def stopped_nodes(self) -> List[int]:
        return [node.node_id for node in self.nodes if node.state == NodeState.STOPPED]
