"""
Cluster Orchestrator - Port leasing and broker lifecycle management
"""
from .port_allocator import PortAllocator, ListeningSocketPreallocator
from .client_config import build_client_configuration, build_jaas_config
from .orchestrator import KafkaOrchestrator

__all__ = [
    'KafkaOrchestrator',
    'PortAllocator',
    'ListeningSocketPreallocator',
    'build_client_configuration',
    'build_jaas_config',
]
