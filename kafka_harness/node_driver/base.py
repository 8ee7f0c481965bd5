"""
Base classes for Node Driver components
"""
import socket
import time
import logging
from abc import ABC
from typing import Callable, Optional
from ..interfaces import INodeDriver

logger = logging.getLogger(__name__)


class BaseNodeDriver(INodeDriver, ABC):
    """Base implementation for node drivers with common functionality"""

    def __init__(self):
        self.cluster_id: Optional[str] = None

    def prepare(self, cluster_id: str) -> None:
        self.cluster_id = cluster_id

    def close(self) -> None:
        pass

    @staticmethod
    def is_port_accepting(host: str, port: int, timeout: float = 1.5) -> bool:
        """Check whether something accepts TCP connections on host:port"""
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            return False

    def wait_for_port(self, host: str, port: int, timeout: float,
                      is_alive: Optional[Callable[[], bool]] = None, interval: float = 0.5) -> bool:
        """
        Wait until host:port accepts connections.

        Returns False on timeout, or as soon as is_alive reports the broker
        has gone away.
        """
        deadline = time.time() + timeout
        while time.time() < deadline:
            if is_alive is not None and not is_alive():
                logger.info(f"Process behind {host}:{port} exited before becoming ready")
                return False
            if self.is_port_accepting(host, port):
                return True
            time.sleep(interval)
        return False
