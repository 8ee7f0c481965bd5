#!/usr/bin/env python3
"""
Command-line interface for the Kafka test cluster harness
Provides commands for bringing up a local cluster and validating cluster configurations.
"""
import sys
import argparse
import json
import yaml
import traceback
import time
import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, Any
from datetime import datetime
from .main import KafkaCluster, create_cluster
from .models import ClusterConfig
from .utils import ClusterConfigLoader
from .cluster_orchestrator.base import validate_cluster_config


class HarnessCLI:
    """Command-line interface for the Kafka test cluster harness"""

    def __init__(self):
        self.config = None

    def load_config_file(self, config_path: str) -> ClusterConfig:
        """Load cluster configuration from YAML or JSON file"""
        return ClusterConfigLoader.load_from_file(config_path)

    def _build_cluster(self, config: ClusterConfig) -> KafkaCluster:
        return create_cluster(config)

    def run_up(self, args) -> int:
        """Start a cluster, print how to reach it and hold it until done"""
        self._print_header("Kafka Test Cluster")

        try:
            self.config = self.load_config_file(args.config)
            print(f"Loaded configuration from {args.config}")
        except Exception as e:
            print(f"Error: Failed to load config file: {e}")
            print(f"\nConfig file must be YAML (.yaml, .yml) or JSON (.json)")
            print(f"Example: kafka-harness up --config cluster.yaml")
            return 1

        if args.brokers is not None:
            self.config = replace(self.config, brokers_num=args.brokers)

        print(f"Brokers: {self.config.brokers_num}")
        print(f"Security Protocol: {self.config.security_protocol}")
        print(f"Mode: {'KRaft' if self.config.kraft_mode else 'ZooKeeper'}")
        print()

        try:
            cluster = self._build_cluster(self.config)
        except Exception as e:
            print(f"Error: Invalid cluster configuration: {e}")
            print(f"\nTry validating your config file first: kafka-harness validate {args.config}")
            return 1

        try:
            cluster.start()
            client_config = cluster.get_kafka_client_configuration()
            self._print_cluster(cluster, client_config)

            if args.output:
                self._save_output(cluster, client_config, args.output, args.format)

            self._hold(args.duration)
        except KeyboardInterrupt:
            print("\nInterrupted, shutting down cluster")
        except Exception as e:
            print(f"Error: Cluster failed to start: {e}")
            if args.verbose:
                traceback.print_exc()
            self._close_quietly(cluster, args.verbose)
            return 1

        try:
            cluster.close()
        except Exception as e:
            print(f"Error: Cluster cleanup failed: {e}")
            if args.verbose:
                traceback.print_exc()
            return 1

        print("\nCluster stopped")
        return 0

    def validate_config(self, args) -> int:
        """Validate a cluster configuration file"""
        self._print_header(f"Validating Config: {args.file}")

        config_path = Path(args.file)
        if not config_path.exists():
            print(f"Error: Config file not found: {args.file}")
            print(f"\nMake sure the file path is correct.")
            print(f"Example: kafka-harness validate cluster.yaml")
            return 1

        try:
            config = self.load_config_file(str(config_path))
            print("Config file loaded successfully")

            validate_cluster_config(config)
            print("Config validated successfully")

            print("\n" + "=" * 60)
            print("Cluster Summary")
            print("=" * 60)
            print(f"Brokers: {config.brokers_num}")
            print(f"Mode: {'KRaft' if config.kraft_mode else 'ZooKeeper'}")
            print(f"Security Protocol: {config.security_protocol}")
            print(f"Client Listener: {config.client_listener.name}")
            print(f"Listeners: {', '.join(listener.name for listener in config.listeners)}")

            if args.verbose:
                print("\nConfiguration:")
                for key, value in ClusterConfigLoader.to_dict(config).items():
                    if key == 'password' and value is not None:
                        value = '******'
                    print(f"  {key}: {value}")

            print("\nCluster configuration is valid!")
            return 0

        except Exception as e:
            print(f"\nError: Validation failed: {e}")
            print(f"\nCheck your config file keys against the ClusterConfig fields.")
            if args.verbose:
                traceback.print_exc()
            return 1

    def _hold(self, duration: float):
        """Keep the cluster up for duration seconds, or until interrupted when 0"""
        if duration and duration > 0:
            print(f"\nHolding cluster for {duration:.0f}s")
            time.sleep(duration)
            return
        print("\nCluster is up, press Ctrl-C to stop")
        while True:
            time.sleep(1)

    def _close_quietly(self, cluster: KafkaCluster, verbose: bool):
        try:
            cluster.close()
        except Exception as e:
            print(f"Cleanup after failure also failed: {e}")
            if verbose:
                traceback.print_exc()

    def _print_header(self, title: str):
        """Print formatted header"""
        print()
        print("=" * 80)
        print(title)
        print("=" * 80)
        print()

    def _print_cluster(self, cluster: KafkaCluster, client_config: Dict[str, Any]):
        """Print how clients reach the running cluster"""
        print(f"\nCluster ID: {cluster.get_cluster_id()}")
        print(f"Bootstrap Servers: {cluster.get_bootstrap_servers()}")
        print(f"Brokers: {cluster.get_num_of_brokers()}")
        print("\nClient Configuration:")
        for key, value in client_config.items():
            print(f"  {key}={value}")

    def _save_output(self, cluster: KafkaCluster, client_config: Dict[str, Any], output_path: str, format: str):
        """Save cluster connection details to file"""
        try:
            output = Path(output_path)
            output.parent.mkdir(parents=True, exist_ok=True)

            data = self._cluster_to_dict(cluster, client_config)

            with open(output, 'w') as f:
                if format == 'json':
                    json.dump(data, f, indent=2)
                elif format == 'yaml':
                    yaml.dump(data, f, default_flow_style=False)

            print(f"\nCluster details saved to {output_path}")

        except Exception as e:
            print(f"\nFailed to save cluster details: {e}")

    def _cluster_to_dict(self, cluster: KafkaCluster, client_config: Dict[str, Any]) -> Dict[str, Any]:
        """Convert cluster status to dictionary"""
        status = cluster.get_cluster_status()
        return {
            'timestamp': datetime.now().isoformat(),
            'cluster_id': status.cluster_id,
            'bootstrap_servers': status.bootstrap_servers,
            'client_configuration': dict(client_config),
            'nodes': [
                {
                    'node_id': node.node_id,
                    'state': node.state.value,
                    'ports': {listener.name: port for listener, port in node.ports.items()},
                    'endpoints': {listener.name: endpoint for listener, endpoint in node.endpoints.items()},
                    'start_count': node.start_count
                }
                for node in status.nodes
            ]
        }


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog='kafka-harness',
        description='Kafka Harness - Provision throwaway Kafka clusters on leased local ports',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start a cluster and keep it up until Ctrl-C
  kafka-harness up --config cluster.yaml

  # Override the broker count
  kafka-harness up --config cluster.yaml --brokers 3

  # Hold the cluster for five minutes and write connection details
  kafka-harness up --config cluster.yaml --duration 300 --output cluster.json

  # Validate a config file
  kafka-harness validate cluster.yaml
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version='Kafka Harness 0.1.0'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # Up command
    up_parser = subparsers.add_parser(
        'up',
        help='Start a local Kafka cluster'
    )
    up_parser.add_argument(
        '--config',
        type=str,
        required=True,
        help='Path to cluster configuration file (YAML or JSON)'
    )
    up_parser.add_argument(
        '--brokers',
        type=int,
        help='Number of brokers to start (overrides the config file)'
    )
    up_parser.add_argument(
        '--output',
        type=str,
        help='Path to save cluster connection details'
    )
    up_parser.add_argument(
        '--format',
        choices=['json', 'yaml'],
        default='json',
        help='Output format for connection details (default: json)'
    )
    up_parser.add_argument(
        '--duration',
        type=float,
        default=0,
        metavar='SECONDS',
        help='Seconds to keep the cluster up, 0 waits for Ctrl-C (default: 0)'
    )
    up_parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    # Validate command
    validate_parser = subparsers.add_parser(
        'validate',
        help='Validate a cluster configuration file'
    )
    validate_parser.add_argument(
        'file',
        help='Path to cluster configuration file'
    )
    validate_parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    return parser


def main(argv=None):
    """Main entry point for CLI"""

    logging.basicConfig(
        level=logging.INFO,
        format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s',
        handlers=[logging.StreamHandler()],
        force=True
    )

    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        print("Error: No command specified\n")
        parser.print_help()
        print("\nCommon commands:")
        print("  kafka-harness up --config cluster.yaml     # Start a cluster")
        print("  kafka-harness validate cluster.yaml        # Validate config file")
        return 1

    if getattr(args, 'verbose', False):
        logging.getLogger().setLevel(logging.DEBUG)

    cli = HarnessCLI()

    try:
        if args.command == 'up':
            if args.brokers is not None and args.brokers < 1:
                print("Error: --brokers must be at least 1")
                return 1
            return cli.run_up(args)
        elif args.command == 'validate':
            return cli.validate_config(args)
    except KeyboardInterrupt:
        print("\n\nKafka Harness process was interrupted by user")
        return 130
    except Exception as e:
        print(f"\nUnexpected error: {e}")
        if hasattr(args, 'verbose') and args.verbose:
            traceback.print_exc()
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
