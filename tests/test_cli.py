"""
Tests for CLI functionality
"""
import pytest
import json
import yaml
from unittest.mock import Mock, patch

from kafka_harness.cli import HarnessCLI, create_parser, main
from kafka_harness.errors import ClusterCleanupError, DriverStartError
from kafka_harness.models import ClusterConfig, ClusterStatus, Listener, NodeState, NodeStatus


@pytest.fixture
def config_file(tmp_path):
    """Write a minimal valid cluster config"""
    path = tmp_path / "cluster.yaml"
    path.write_text("brokers_num: 2\nsecurity_protocol: PLAINTEXT\n")
    return path


@pytest.fixture
def mock_cluster():
    """Create a mock running cluster"""
    cluster = Mock()
    cluster.get_cluster_id.return_value = "Q2x1c3RlcklkRm9yVGVzdA"
    cluster.get_bootstrap_servers.return_value = "localhost:40001,localhost:40002"
    cluster.get_num_of_brokers.return_value = 2
    cluster.get_kafka_client_configuration.return_value = {
        'bootstrap.servers': "localhost:40001,localhost:40002",
        'security.protocol': "PLAINTEXT",
    }
    cluster.get_cluster_status.return_value = ClusterStatus(
        cluster_id="Q2x1c3RlcklkRm9yVGVzdA",
        bootstrap_servers="localhost:40001,localhost:40002",
        nodes=[
            NodeStatus(0, NodeState.RUNNING, {Listener.EXTERNAL: 40001}, {Listener.EXTERNAL: "localhost:40001"}),
            NodeStatus(1, NodeState.RUNNING, {Listener.EXTERNAL: 40002}, {Listener.EXTERNAL: "localhost:40002"}, 1),
        ],
        started=True,
        closed=False
    )
    return cluster


def _up_args(config, **overrides):
    values = dict(config=str(config), brokers=None, output=None, format='json', duration=0.01, verbose=False)
    values.update(overrides)
    return Mock(**values)


class TestHarnessCLI:
    """Test HarnessCLI class"""

    def test_load_yaml_config(self, config_file):
        """Test loading YAML configuration file"""
        cli = HarnessCLI()
        loaded = cli.load_config_file(str(config_file))

        assert loaded == ClusterConfig(brokers_num=2)

    def test_load_config_file_not_found(self):
        """Test loading non-existent config file"""
        cli = HarnessCLI()

        with pytest.raises(FileNotFoundError):
            cli.load_config_file("nonexistent.yaml")

    @patch('kafka_harness.cli.create_cluster')
    def test_run_up_success(self, mock_create, mock_cluster, config_file, capsys):
        """Test bringing a cluster up and down"""
        mock_create.return_value = mock_cluster

        cli = HarnessCLI()
        result = cli.run_up(_up_args(config_file))

        assert result == 0
        mock_cluster.start.assert_called_once()
        mock_cluster.close.assert_called_once()
        assert mock_create.call_args[0][0].brokers_num == 2

        captured = capsys.readouterr()
        assert "Q2x1c3RlcklkRm9yVGVzdA" in captured.out
        assert "bootstrap.servers=localhost:40001,localhost:40002" in captured.out
        assert "Cluster stopped" in captured.out

    @patch('kafka_harness.cli.create_cluster')
    def test_run_up_brokers_override(self, mock_create, mock_cluster, config_file):
        mock_create.return_value = mock_cluster

        cli = HarnessCLI()
        cli.run_up(_up_args(config_file, brokers=5))

        assert mock_create.call_args[0][0].brokers_num == 5
        assert cli.config.brokers_num == 5

    @patch('kafka_harness.cli.create_cluster')
    def test_run_up_writes_json_output(self, mock_create, mock_cluster, config_file, tmp_path):
        mock_create.return_value = mock_cluster
        output = tmp_path / "out" / "cluster.json"

        result = HarnessCLI().run_up(_up_args(config_file, output=str(output)))

        assert result == 0
        data = json.loads(output.read_text())
        assert data['cluster_id'] == "Q2x1c3RlcklkRm9yVGVzdA"
        assert data['bootstrap_servers'] == "localhost:40001,localhost:40002"
        assert data['client_configuration']['security.protocol'] == "PLAINTEXT"
        assert data['nodes'][1] == {
            'node_id': 1,
            'state': 'running',
            'ports': {'EXTERNAL': 40002},
            'endpoints': {'EXTERNAL': 'localhost:40002'},
            'start_count': 1,
        }

    @patch('kafka_harness.cli.create_cluster')
    def test_run_up_writes_yaml_output(self, mock_create, mock_cluster, config_file, tmp_path):
        mock_create.return_value = mock_cluster
        output = tmp_path / "cluster.yaml.out"

        HarnessCLI().run_up(_up_args(config_file, output=str(output), format='yaml'))

        data = yaml.safe_load(output.read_text())
        assert data['cluster_id'] == "Q2x1c3RlcklkRm9yVGVzdA"
        assert len(data['nodes']) == 2

    @patch('kafka_harness.cli.create_cluster')
    def test_run_up_start_failure_closes_cluster(self, mock_create, mock_cluster, config_file, capsys):
        """Test a failed start still cleans up and reports failure"""
        mock_cluster.start.side_effect = DriverStartError(0, "Node 0 failed to become ready")
        mock_create.return_value = mock_cluster

        result = HarnessCLI().run_up(_up_args(config_file))

        assert result == 1
        mock_cluster.close.assert_called_once()
        assert "Cluster failed to start" in capsys.readouterr().out

    @patch('kafka_harness.cli.create_cluster')
    def test_run_up_cleanup_failure(self, mock_create, mock_cluster, config_file):
        mock_cluster.close.side_effect = ClusterCleanupError([RuntimeError("stuck")])
        mock_create.return_value = mock_cluster

        assert HarnessCLI().run_up(_up_args(config_file)) == 1

    @patch('kafka_harness.cli.create_cluster')
    def test_run_up_interrupt_shuts_down(self, mock_create, mock_cluster, config_file):
        mock_create.return_value = mock_cluster

        with patch.object(HarnessCLI, '_hold', side_effect=KeyboardInterrupt()):
            result = HarnessCLI().run_up(_up_args(config_file, duration=0))

        assert result == 0
        mock_cluster.close.assert_called_once()

    def test_run_up_bad_config(self, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("num_shards: 3\n")

        assert HarnessCLI().run_up(_up_args(bad)) == 1

    def test_run_up_invalid_values(self, tmp_path, capsys):
        bad = tmp_path / "bad.yaml"
        bad.write_text("brokers_num: 0\n")

        assert HarnessCLI().run_up(_up_args(bad)) == 1
        assert "Invalid cluster configuration" in capsys.readouterr().out

    def test_validate_config_success(self, config_file, capsys):
        args = Mock(file=str(config_file), verbose=True)

        result = HarnessCLI().validate_config(args)

        assert result == 0
        captured = capsys.readouterr()
        assert "Cluster configuration is valid!" in captured.out
        assert "Brokers: 2" in captured.out
        assert "EXTERNAL, ANON, INTERNAL, CONTROLLER" in captured.out

    def test_validate_config_masks_password(self, tmp_path, capsys):
        path = tmp_path / "sasl.json"
        path.write_text(json.dumps({
            'security_protocol': 'SASL_PLAINTEXT',
            'user': 'alice',
            'password': 'top-secret'
        }))

        result = HarnessCLI().validate_config(Mock(file=str(path), verbose=True))

        assert result == 0
        assert "top-secret" not in capsys.readouterr().out

    def test_validate_config_file_not_found(self, tmp_path):
        args = Mock(file=str(tmp_path / "missing.yaml"), verbose=False)

        assert HarnessCLI().validate_config(args) == 1

    def test_validate_config_invalid(self, tmp_path, capsys):
        path = tmp_path / "cluster.yaml"
        path.write_text("brokers_num: 1\nuser: alice\n")

        result = HarnessCLI().validate_config(Mock(file=str(path), verbose=False))

        assert result == 1
        assert "Validation failed" in capsys.readouterr().out


class TestCLIParser:
    """Test CLI argument parser"""

    def test_parse_commands(self):
        parser = create_parser()
        assert parser.prog == 'kafka-harness'

    def test_parse_up_command(self):
        parser = create_parser()
        args = parser.parse_args(['up', '--config', 'cluster.yaml'])

        assert args.command == 'up'
        assert args.config == 'cluster.yaml'
        assert args.brokers is None
        assert args.duration == 0
        assert args.format == 'json'

    def test_parse_up_options(self):
        parser = create_parser()
        args = parser.parse_args([
            'up', '--config', 'cluster.yaml', '--brokers', '3', '--output', 'cluster.yaml',
            '--format', 'yaml', '--duration', '120', '--verbose'
        ])

        assert args.brokers == 3
        assert args.output == 'cluster.yaml'
        assert args.format == 'yaml'
        assert args.duration == 120.0
        assert args.verbose

    def test_parse_up_requires_config(self):
        parser = create_parser()

        with pytest.raises(SystemExit):
            parser.parse_args(['up'])

    def test_parse_validate_command(self):
        parser = create_parser()
        args = parser.parse_args(['validate', 'cluster.yaml'])

        assert args.command == 'validate'
        assert args.file == 'cluster.yaml'


class TestCLIMain:
    """Test main CLI entry point"""

    @patch('kafka_harness.cli.HarnessCLI')
    def test_main_up_command(self, mock_cli_class):
        mock_cli = Mock()
        mock_cli.run_up.return_value = 0
        mock_cli_class.return_value = mock_cli

        with patch('sys.argv', ['cli', 'up', '--config', 'cluster.yaml']):
            result = main()

        assert result == 0
        mock_cli.run_up.assert_called_once()

    @patch('kafka_harness.cli.HarnessCLI')
    def test_main_validate_command(self, mock_cli_class):
        mock_cli = Mock()
        mock_cli.validate_config.return_value = 0
        mock_cli_class.return_value = mock_cli

        result = main(['validate', 'cluster.yaml'])

        assert result == 0
        mock_cli.validate_config.assert_called_once()

    def test_main_validate_real_file(self, config_file):
        assert main(['validate', str(config_file)]) == 0

    def test_main_no_command(self):
        with patch('sys.argv', ['cli']):
            result = main()

        assert result == 1

    def test_main_rejects_non_positive_brokers(self, config_file):
        assert main(['up', '--config', str(config_file), '--brokers', '0']) == 1

    @patch('kafka_harness.cli.HarnessCLI')
    def test_main_keyboard_interrupt(self, mock_cli_class):
        mock_cli = Mock()
        mock_cli.validate_config.side_effect = KeyboardInterrupt()
        mock_cli_class.return_value = mock_cli

        result = main(['validate', 'cluster.yaml'])

        assert result == 130

    @patch('kafka_harness.cli.HarnessCLI')
    def test_main_unexpected_error(self, mock_cli_class):
        mock_cli = Mock()
        mock_cli.run_up.side_effect = RuntimeError("boom")
        mock_cli_class.return_value = mock_cli

        assert main(['up', '--config', 'cluster.yaml']) == 1
