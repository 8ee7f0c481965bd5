from .config_loader import ClusterConfigLoader

__all__ = ['ClusterConfigLoader']
