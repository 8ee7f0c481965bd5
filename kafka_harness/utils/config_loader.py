"""
Config Loader - Load cluster configuration from YAML or JSON
"""
import json
import yaml
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict, Union
from ..models import ClusterConfig, Listener


class ClusterConfigLoader:
    """Utility class for loading and serializing cluster configurations"""

    @staticmethod
    def load_from_file(file_path: Union[str, Path]) -> ClusterConfig:
        """Load a cluster configuration from a YAML (.yaml, .yml) or JSON (.json) file."""
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(file_path, 'r') as f:
            text = f.read()

        if file_path.suffix in ['.yaml', '.yml']:
            return ClusterConfigLoader.load_from_string(text, 'yaml')
        elif file_path.suffix == '.json':
            return ClusterConfigLoader.load_from_string(text, 'json')
        else:
            raise ValueError(f"Unsupported config format: {file_path.suffix}")

    @staticmethod
    def load_from_string(config_text: str, format: str = 'yaml') -> ClusterConfig:
        """Load a cluster configuration from YAML or JSON text."""
        try:
            if format == 'json':
                data = json.loads(config_text)
            else:
                data = yaml.safe_load(config_text)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid {format.upper()} syntax: {e}")

        return ClusterConfigLoader.from_dict(data or {})

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> ClusterConfig:
        if not isinstance(data, dict):
            raise ValueError(f"Cluster configuration must be a mapping, got {type(data).__name__}")

        known = {f.name for f in fields(ClusterConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown cluster configuration field(s): {', '.join(unknown)}")

        values = dict(data)
        if 'client_listener' in values:
            values['client_listener'] = ClusterConfigLoader._parse_listener(values['client_listener'])
        if 'node_command' in values:
            command = values['node_command']
            if isinstance(command, str):
                command = command.split()
            if not isinstance(command, list):
                raise ValueError("node_command must be a list of arguments or a string")
            values['node_command'] = [str(arg) for arg in command]
        for mapping_field in ('broker_properties', 'client_properties'):
            if mapping_field in values and not isinstance(values[mapping_field], dict):
                raise ValueError(f"{mapping_field} must be a mapping")

        return ClusterConfig(**values)

    @staticmethod
    def to_dict(config: ClusterConfig) -> Dict[str, Any]:
        """Serialize a cluster configuration to plain types."""
        data = asdict(config)
        data['client_listener'] = config.client_listener.name
        return data

    @staticmethod
    def _parse_listener(value: Any) -> Listener:
        if isinstance(value, Listener):
            return value
        name = str(value).strip()
        try:
            return Listener[name.upper()]
        except KeyError:
            raise ValueError(f"Invalid listener: {value}")
