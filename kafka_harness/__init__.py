"""
Kafka Harness - throwaway Kafka clusters for integration tests

Leases OS-verified free ports for every broker listener, drives brokers
through their lifecycle with an injected node driver and hands out the
client configuration needed to reach the live cluster.
"""
from .errors import (
    KafkaHarnessError, InvalidRangeError, NotAllocatedError, PortAllocationError,
    ClusterStateError, AlreadyStartedError, ClusterNotStartedError, ClusterClosedError,
    LastBrokerRemovalError, UnknownOrReusedNodeIdError, DriverError, DriverStartError,
    DriverStopError, GracefulStopTimeoutError, MultipleDriverErrors, ClusterCleanupError
)
from .interfaces import IKafkaCluster, INodeDriver
from .models import (
    ClusterConfig, ClusterStatus, Endpoint, Listener, NodeState, NodeStatus,
    PortLease, TerminationStyle
)
from .main import KafkaCluster, create_cluster

__version__ = "0.1.0"

__all__ = [
    'KafkaCluster',
    'create_cluster',
    'IKafkaCluster',
    'INodeDriver',
    'ClusterConfig',
    'ClusterStatus',
    'Endpoint',
    'Listener',
    'NodeState',
    'NodeStatus',
    'PortLease',
    'TerminationStyle',
    'KafkaHarnessError',
    'InvalidRangeError',
    'NotAllocatedError',
    'PortAllocationError',
    'ClusterStateError',
    'AlreadyStartedError',
    'ClusterNotStartedError',
    'ClusterClosedError',
    'LastBrokerRemovalError',
    'UnknownOrReusedNodeIdError',
    'DriverError',
    'DriverStartError',
    'DriverStopError',
    'GracefulStopTimeoutError',
    'MultipleDriverErrors',
    'ClusterCleanupError',
]
