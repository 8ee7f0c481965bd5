"""
Node Drivers - Start and stop individual broker instances
"""
from .base import BaseNodeDriver
from .process_driver import ProcessNodeDriver, NodeProcess

__all__ = [
    'BaseNodeDriver',
    'ProcessNodeDriver',
    'NodeProcess',
]
