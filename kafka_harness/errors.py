"""
Error taxonomy for the Kafka test cluster harness

Bookkeeping errors (allocator and orchestrator preconditions) are kept apart
from driver errors so callers can tell a broker process failure from a
misuse of the cluster API.
"""
from typing import List, Optional


class KafkaHarnessError(Exception):
    """Base class for all harness errors"""


class InvalidRangeError(KafkaHarnessError, ValueError):
    """A node id range passed to the port allocator is empty or reversed"""

    def __init__(self, first_node_id: int, last_node_id: int):
        self.first_node_id = first_node_id
        self.last_node_id = last_node_id
        super().__init__(
            f"Attempted to allocate ports to an invalid range of node ids: [{first_node_id},{last_node_id})"
        )


class NotAllocatedError(KafkaHarnessError, LookupError):
    """A port was looked up for a (listener, node id) pair that holds no lease"""

    def __init__(self, listener, node_id: int):
        self.listener = listener
        self.node_id = node_id
        super().__init__(f"No port allocated for listener {listener.name} on node {node_id}")


class PortAllocationError(KafkaHarnessError, RuntimeError):
    """The OS could not supply enough fresh ports"""


class ClusterStateError(KafkaHarnessError, RuntimeError):
    """The cluster is not in a state that permits the requested operation"""


class AlreadyStartedError(ClusterStateError):
    pass


class ClusterNotStartedError(ClusterStateError):
    pass


class ClusterClosedError(ClusterStateError):
    pass


class LastBrokerRemovalError(ClusterStateError):
    """Removing the node would leave the cluster without a running broker"""

    def __init__(self, node_id: int):
        self.node_id = node_id
        super().__init__(f"Cannot remove node {node_id}: it would leave the cluster with no running brokers")


class UnknownOrReusedNodeIdError(KafkaHarnessError, LookupError):
    """The node id was never issued or has already been removed"""

    def __init__(self, node_id: int, removed: bool = False):
        self.node_id = node_id
        self.removed = removed
        reason = "has already been removed" if removed else "is not a member of the cluster"
        super().__init__(f"Node {node_id} {reason}")


class DriverError(KafkaHarnessError):
    """A node driver failed while controlling a broker, or while preparing the cluster (node_id None)"""

    def __init__(self, node_id: Optional[int], message: str):
        self.node_id = node_id
        super().__init__(message)


class DriverStartError(DriverError):
    def __init__(self, node_id: Optional[int], message: Optional[str] = None):
        super().__init__(node_id, message or f"Node {node_id} failed to start")


class DriverStopError(DriverError):
    def __init__(self, node_id: int, message: Optional[str] = None):
        super().__init__(node_id, message or f"Node {node_id} failed to stop")


class GracefulStopTimeoutError(DriverStopError):
    """A graceful stop did not finish within its timeout"""

    def __init__(self, node_id: int, timeout: float):
        self.timeout = timeout
        super().__init__(node_id, f"Node {node_id} did not stop gracefully within {timeout:.2f}s")


class MultipleDriverErrors(DriverError):
    """Several nodes failed in one start or stop batch"""

    def __init__(self, errors: List[Exception]):
        self.errors = list(errors)
        self.node_ids = [getattr(error, "node_id", None) for error in self.errors]
        details = "; ".join(str(error) for error in self.errors)
        super().__init__(None, f"{len(self.errors)} node(s) failed: {details}")


class ClusterCleanupError(KafkaHarnessError):
    """One or more failures while closing a cluster"""

    def __init__(self, errors: List[Exception]):
        self.errors = list(errors)
        details = "; ".join(str(error) for error in self.errors)
        super().__init__(f"{len(self.errors)} failure(s) during cluster cleanup: {details}")
