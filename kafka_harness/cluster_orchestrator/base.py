"""
Base classes for Cluster Orchestrator components
"""
import base64
import uuid
from abc import ABC
from typing import List, Tuple
from ..interfaces import IKafkaCluster
from ..models import ClusterConfig, SECURITY_PROTOCOLS
from .client_config import LOGIN_MODULES


def validate_cluster_config(config: ClusterConfig) -> bool:
    """Validate cluster configuration, raising ValueError on the first problem"""
    if config.brokers_num < 1:
        raise ValueError(f"brokers_num must be at least 1, got {config.brokers_num}")
    if config.security_protocol not in SECURITY_PROTOCOLS:
        raise ValueError(
            f"security_protocol must be one of {', '.join(SECURITY_PROTOCOLS)}, got {config.security_protocol}"
        )
    if config.sasl_mechanism is not None and config.sasl_mechanism.upper() not in LOGIN_MODULES:
        raise ValueError(f"Unsupported sasl_mechanism: {config.sasl_mechanism}")
    if (config.user is None) != (config.password is None):
        raise ValueError("user and password must be configured together")
    if config.graceful_stop_timeout <= 0:
        raise ValueError(f"graceful_stop_timeout must be positive, got {config.graceful_stop_timeout}")
    if config.ready_timeout <= 0:
        raise ValueError(f"ready_timeout must be positive, got {config.ready_timeout}")
    if config.client_listener not in config.listeners:
        raise ValueError(f"client_listener {config.client_listener.name} is not an active listener")
    if not config.node_command:
        raise ValueError("node_command must not be empty")
    return True


class BaseClusterOrchestrator(IKafkaCluster, ABC):
    """Base implementation for cluster orchestration with common functionality"""

    def __init__(self, config: ClusterConfig):
        self._validate_cluster_config(config)
        self.config = config

    def _generate_cluster_id(self) -> str:
        """Generate a Kafka style cluster id (URL-safe base64 of a random UUID)"""
        return base64.urlsafe_b64encode(uuid.uuid4().bytes).decode("ascii").rstrip("=")

    def _validate_cluster_config(self, config: ClusterConfig) -> bool:
        """Validate cluster configuration before any node is registered"""
        return validate_cluster_config(config)

    @staticmethod
    def _contiguous_ranges(node_ids: List[int]) -> List[Tuple[int, int]]:
        """Group node ids into half-open [first, last) runs"""
        ranges: List[Tuple[int, int]] = []
        for node_id in sorted(node_ids):
            if ranges and ranges[-1][1] == node_id:
                ranges[-1] = (ranges[-1][0], node_id + 1)
            else:
                ranges.append((node_id, node_id + 1))
        return ranges
