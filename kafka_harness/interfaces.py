"""
Base interfaces for the cluster surface and node drivers
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Set
from .models import Endpoint, Listener, PortLease, TerminationStyle


class IKafkaCluster(ABC):
    """Interface for controlling a Kafka test cluster"""

    @abstractmethod
    def start(self) -> None:
        """Start the initial set of brokers"""
        pass

    @abstractmethod
    def add_broker(self) -> int:
        """Add and start a new broker, returning its node id"""
        pass

    @abstractmethod
    def remove_broker(self, node_id: int) -> None:
        """Stop a broker and remove it from the cluster for good"""
        pass

    @abstractmethod
    def stop_nodes(self, node_id_predicate: Callable[[int], bool], termination_style: TerminationStyle) -> Set[int]:
        """Stop the running nodes matching the predicate"""
        pass

    @abstractmethod
    def start_nodes(self, node_id_predicate: Callable[[int], bool]) -> Set[int]:
        """Restart the stopped nodes matching the predicate"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Stop every node and release all resources"""
        pass

    @abstractmethod
    def get_num_of_brokers(self) -> int:
        """Number of brokers that have not been removed"""
        pass

    @abstractmethod
    def get_stopped_brokers(self) -> Set[int]:
        """Node ids of the stopped brokers"""
        pass

    @abstractmethod
    def get_bootstrap_servers(self) -> str:
        """Comma separated client endpoints of the running brokers"""
        pass

    @abstractmethod
    def get_cluster_id(self) -> Optional[str]:
        """Cluster identity assigned at start"""
        pass

    @abstractmethod
    def get_kafka_client_configuration(self, user: Optional[str] = None, password: Optional[str] = None) -> Dict[str, Any]:
        """Minimal client configuration needed to reach the cluster"""
        pass


class INodeDriver(ABC):
    """Interface for starting and stopping a single broker instance"""

    @abstractmethod
    def prepare(self, cluster_id: str) -> None:
        """Called once when the cluster starts, before any node is started"""
        pass

    @abstractmethod
    def start(self, node_id: int, leases: Dict[Listener, PortLease]) -> Dict[Listener, Endpoint]:
        """Start a broker on the leased ports and return the endpoints it is bound to"""
        pass

    @abstractmethod
    def stop(self, node_id: int, termination_style: TerminationStyle) -> None:
        """Stop a broker using the given termination style"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release anything the driver still holds"""
        pass
