import socket
import time
import logging
import threading
from typing import Dict, Iterable, List, Optional, Set
from ..errors import InvalidRangeError, NotAllocatedError, PortAllocationError
from ..models import Listener, PortLease

logger = logging.getLogger(__name__)


class ListeningSocketPreallocator:
    """
    Holds probe sockets open until the allocation batch is complete.

    While a socket stays bound the OS cannot hand its port out again, so every
    port drawn through one preallocator is distinct. Closing the preallocator
    closes all of them at once.
    """

    def __init__(self, bind_host: str = "", max_attempts_per_port: int = 50):
        self.bind_host = bind_host
        self.max_attempts_per_port = max_attempts_per_port
        self._sockets: List[socket.socket] = []

    def __enter__(self) -> "ListeningSocketPreallocator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def preallocate(self, count: int, exclude: Set[int]) -> List[int]:
        """Draw count free ports, skipping any port in exclude"""
        ports = []
        attempts = 0
        max_attempts = count * self.max_attempts_per_port
        while len(ports) < count:
            if attempts >= max_attempts:
                raise PortAllocationError(
                    f"Unable to find {count} free ports after {attempts} attempts ({len(ports)} found)"
                )
            attempts += 1
            port = self._bind_ephemeral()
            # The socket stays open either way so the OS does not return the port again
            if port in exclude:
                logger.debug(f"Probed port {port} is already leased, probing again")
                continue
            ports.append(port)
        return ports

    def _bind_ephemeral(self) -> int:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.bind((self.bind_host, 0))
            sock.listen(1)
        except OSError as e:
            sock.close()
            raise PortAllocationError(f"Failed to bind probe socket on '{self.bind_host}': {e}") from e
        self._sockets.append(sock)
        return sock.getsockname()[1]

    def close(self) -> None:
        for sock in self._sockets:
            sock.close()
        self._sockets.clear()


class PortAllocator:
    """
    Leases OS-verified free ports to (listener, node id) pairs.

    A lease is only a port number: the probe socket is closed as soon as the
    batch is recorded. Every operation holds the allocator lock, including
    the bind probes themselves.
    """

    def __init__(self, bind_host: str = ""):
        self.bind_host = bind_host
        self._lock = threading.Lock()
        self._leases: Dict[Listener, Dict[int, PortLease]] = {}
        self._generation = 0

    def allocate(self, listeners: Iterable[Listener], first_node_id: int,
                 last_node_id: Optional[int] = None) -> Dict[Listener, Dict[int, PortLease]]:
        """
        Lease one port per listener for each node id in [first_node_id, last_node_id).

        When last_node_id is omitted only first_node_id is allocated.
        """
        if last_node_id is None:
            last_node_id = first_node_id + 1
        if last_node_id <= first_node_id:
            raise InvalidRangeError(first_node_id, last_node_id)

        node_ids = list(range(first_node_id, last_node_id))
        ordered_listeners = sorted(set(listeners), key=lambda listener: listener.value)

        with self._lock:
            in_use = self._leased_ports()
            drawn: Dict[Listener, List[int]] = {}
            with ListeningSocketPreallocator(self.bind_host) as preallocator:
                for listener in ordered_listeners:
                    drawn[listener] = preallocator.preallocate(len(node_ids), exclude=in_use)

            self._generation += 1
            leased_at = time.time()
            allocated: Dict[Listener, Dict[int, PortLease]] = {}
            for listener, ports in drawn.items():
                listener_leases = self._leases.setdefault(listener, {})
                for node_id, port in zip(node_ids, ports):
                    lease = PortLease(
                        listener=listener,
                        node_id=node_id,
                        port=port,
                        generation=self._generation,
                        leased_at=leased_at
                    )
                    previous = listener_leases.get(node_id)
                    if previous is not None:
                        logger.debug(f"Replacing lease {listener.name}/{node_id}: {previous.port} -> {port}")
                    listener_leases[node_id] = lease
                    allocated.setdefault(listener, {})[node_id] = lease

            logger.info(
                f"Allocated ports for nodes [{first_node_id},{last_node_id}) on "
                f"{', '.join(listener.name for listener in ordered_listeners)} (generation {self._generation})"
            )
            return allocated

    def get_port(self, listener: Listener, node_id: int) -> int:
        return self.get_lease(listener, node_id).port

    def get_lease(self, listener: Listener, node_id: int) -> PortLease:
        with self._lock:
            lease = self._leases.get(listener, {}).get(node_id)
            if lease is None:
                raise NotAllocatedError(listener, node_id)
            return lease

    def get_leases(self, node_id: int) -> Dict[Listener, PortLease]:
        """All leases held by a node, keyed by listener"""
        with self._lock:
            return {
                listener: listener_leases[node_id]
                for listener, listener_leases in self._leases.items()
                if node_id in listener_leases
            }

    def contains_port(self, listener: Listener, node_id: int) -> bool:
        with self._lock:
            return node_id in self._leases.get(listener, {})

    def deallocate(self, node_id: int) -> None:
        """Release every lease held by a node; a node without leases is ignored"""
        with self._lock:
            released = []
            for listener, listener_leases in self._leases.items():
                lease = listener_leases.pop(node_id, None)
                if lease is not None:
                    released.append(f"{listener.name}={lease.port}")
            if released:
                logger.info(f"Released ports for node {node_id}: {', '.join(released)}")

    def leased_node_ids(self) -> Set[int]:
        with self._lock:
            return {node_id for listener_leases in self._leases.values() for node_id in listener_leases}

    def _leased_ports(self) -> Set[int]:
        return {lease.port for listener_leases in self._leases.values() for lease in listener_leases.values()}
