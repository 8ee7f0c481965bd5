"""
Main entry point for the Kafka test cluster harness
"""
from typing import Any, Callable, Dict, Optional, Set
from .cluster_orchestrator import KafkaOrchestrator
from .interfaces import IKafkaCluster, INodeDriver
from .models import ClusterConfig, ClusterStatus, TerminationStyle
from .node_driver import ProcessNodeDriver


class KafkaCluster(IKafkaCluster):
    """Main handle for a Kafka test cluster"""

    def __init__(self, config: ClusterConfig, driver: INodeDriver):
        """
        Initialize the cluster with an orchestrator driving the given node driver
        """
        self.config = config
        self.orchestrator = KafkaOrchestrator(config, driver)

    def __enter__(self) -> "KafkaCluster":
        self.start()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def start(self) -> None:
        self.orchestrator.start()

    def add_broker(self) -> int:
        return self.orchestrator.add_broker()

    def remove_broker(self, node_id: int) -> None:
        self.orchestrator.remove_broker(node_id)

    def stop_nodes(self, node_id_predicate: Callable[[int], bool], termination_style: TerminationStyle) -> Set[int]:
        return self.orchestrator.stop_nodes(node_id_predicate, termination_style)

    def start_nodes(self, node_id_predicate: Callable[[int], bool]) -> Set[int]:
        return self.orchestrator.start_nodes(node_id_predicate)

    def close(self) -> None:
        self.orchestrator.close()

    def get_num_of_brokers(self) -> int:
        return self.orchestrator.get_num_of_brokers()

    def get_stopped_brokers(self) -> Set[int]:
        return self.orchestrator.get_stopped_brokers()

    def get_bootstrap_servers(self) -> str:
        return self.orchestrator.get_bootstrap_servers()

    def get_cluster_id(self) -> Optional[str]:
        return self.orchestrator.get_cluster_id()

    def get_kafka_client_configuration(self, user: Optional[str] = None, password: Optional[str] = None) -> Dict[str, Any]:
        return self.orchestrator.get_kafka_client_configuration(user, password)

    def get_cluster_status(self) -> ClusterStatus:
        """
        Snapshot of node states, ports and endpoints.
        """
        return self.orchestrator.get_cluster_status()


def create_cluster(config: Optional[ClusterConfig] = None, driver: Optional[INodeDriver] = None) -> KafkaCluster:
    """
    Build a cluster handle, spawning brokers as local processes unless a driver is given.
    """
    config = config or ClusterConfig()
    return KafkaCluster(config, driver or ProcessNodeDriver(config))
