"""Integration tests for the ofw CLI.

Exercises the commands end to end through Typer, with the in-memory engine
or a patched subprocess standing in for iptables and the root check mocked.
"""

import subprocess
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from ofw import __version__
from ofw.cli import app
from ofw.core.config import get_example_config
from ofw.core.exceptions import EngineCommandError, EngineUnavailableError


runner = CliRunner()

NETWORK = "10.1.0.0/16"
SUBNET = "10.1.15.0/24"


@pytest.fixture
def config_file(tmp_path) -> Path:
    """Configuration with masquerade and forward rules enabled."""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({"network": NETWORK, "subnet": SUBNET}))
    return path


@pytest.fixture
def mock_root() -> Generator[None, None, None]:
    """Mock the root check to allow tests to run without root."""
    with patch("ofw.commands.os.geteuid", return_value=0):
        yield


def _use_engine(command: str, engine):
    return patch(f"ofw.commands.{command}._get_engine", return_value=engine)


class TestGlobal:
    """Tests for top-level options."""

    def test_version(self):
        """--version prints the version and exits cleanly."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self):
        """Running without a command shows usage."""
        result = runner.invoke(app, [])
        assert "Usage" in result.output


class TestConfigCommands:
    """Tests for the config subcommands."""

    def test_example(self):
        """config example prints a loadable configuration."""
        result = runner.invoke(app, ["config", "example"])
        assert result.exit_code == 0
        assert "network: 10.1.0.0/16" in result.output

    def test_init(self, tmp_path):
        """config init writes the example file."""
        path = tmp_path / "ofw" / "config.yaml"
        result = runner.invoke(app, ["config", "init", "-c", str(path)])

        assert result.exit_code == 0
        assert path.read_text() == get_example_config()

    def test_init_existing(self, config_file):
        """config init refuses to overwrite without --force."""
        result = runner.invoke(app, ["config", "init", "-c", str(config_file)])
        assert result.exit_code == 2

    def test_validate_ok(self, config_file):
        """A valid file validates."""
        result = runner.invoke(app, ["config", "validate", "-c", str(config_file)])
        assert result.exit_code == 0

    def test_validate_bad_subnet(self, tmp_path):
        """A subnet outside the network fails validation."""
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"network": NETWORK, "subnet": "10.2.0.0/24"}))

        result = runner.invoke(app, ["config", "validate", "-c", str(path)])
        assert result.exit_code == 2

    def test_validate_missing_file(self, tmp_path):
        """A missing file fails validation."""
        result = runner.invoke(app, ["config", "validate", "-c", str(tmp_path / "none.yaml")])
        assert result.exit_code == 1

    def test_show(self, config_file):
        """config show succeeds on a valid file."""
        result = runner.invoke(app, ["config", "show", "-c", str(config_file)])
        assert result.exit_code == 0


class TestRulesCommand:
    """Tests for printing the desired rules."""

    def test_lists_enabled_sets(self, config_file, make_engine):
        """Every enabled rule set is printed."""
        with _use_engine("rules", make_engine(random_fully=True)):
            result = runner.invoke(app, ["rules", "-c", str(config_file)])

        assert result.exit_code == 0
        assert "masquerade rules" in result.output
        assert "forward rules" in result.output

    def test_without_iptables(self, config_file):
        """Rules can be shown on a host without iptables."""
        with _use_engine("rules", None):
            result = runner.invoke(app, ["rules", "-c", str(config_file)])
        assert result.exit_code == 0

    def test_missing_network(self, tmp_path):
        """Missing addressing is a configuration error."""
        path = tmp_path / "config.yaml"
        path.write_text("resync_period: 5\n")

        with _use_engine("rules", None):
            result = runner.invoke(app, ["rules", "-c", str(path)])
        assert result.exit_code == 2


class TestSyncAndCheck:
    """Tests for one-shot reconcile and drift check."""

    def test_sync_applies_rules(self, config_file, engine, mock_root):
        """sync installs every enabled rule set."""
        with _use_engine("sync", engine):
            result = runner.invoke(app, ["sync", "-c", str(config_file)])

        assert result.exit_code == 0
        assert len(engine.rules_in("nat", "POSTROUTING")) == 4
        assert len(engine.rules_in("filter", "FORWARD")) == 1
        assert len(engine.rules_in("filter", "OVERLAY-FORWARD")) == 2

    def test_second_sync_changes_nothing(self, config_file, engine, mock_root):
        """A second sync only queries."""
        with _use_engine("sync", engine):
            runner.invoke(app, ["sync", "-c", str(config_file)])
            engine.calls.clear()
            result = runner.invoke(app, ["sync", "-c", str(config_file)])

        assert result.exit_code == 0
        assert engine.mutations() == []

    def test_check_reports_drift(self, config_file, engine, mock_root):
        """check exits 1 before sync and 0 after."""
        with _use_engine("check", engine):
            before = runner.invoke(app, ["check", "-c", str(config_file)])
        with _use_engine("sync", engine):
            runner.invoke(app, ["sync", "-c", str(config_file)])
        with _use_engine("check", engine):
            after = runner.invoke(app, ["check", "-c", str(config_file)])

        assert before.exit_code == 1
        assert after.exit_code == 0

    def test_check_never_mutates(self, config_file, engine, mock_root):
        """check leaves the firewall alone."""
        with _use_engine("check", engine):
            runner.invoke(app, ["check", "-c", str(config_file)])
        assert engine.mutations() == []
        assert engine.count("new_chain") == 0

    def test_sync_failure_exit_code(self, config_file, make_engine, mock_root):
        """A failing rule set exits with the firewall error status."""
        engine = make_engine(failures={
            "exists": EngineCommandError("xtables lock", return_code=4),
        })
        with _use_engine("sync", engine):
            result = runner.invoke(app, ["sync", "-c", str(config_file)])
        assert result.exit_code == 15

    def test_sync_requires_root(self, config_file, engine):
        """Without root, sync refuses to run."""
        with patch("ofw.commands.os.geteuid", return_value=1000), _use_engine("sync", engine):
            result = runner.invoke(app, ["sync", "-c", str(config_file)])

        assert result.exit_code == 6
        assert engine.calls == []

    def test_sync_without_iptables(self, config_file, mock_root):
        """A missing iptables is a prerequisite failure."""
        with patch(
            "ofw.commands.sync._get_engine",
            side_effect=EngineUnavailableError("iptables binary was not found"),
        ):
            result = runner.invoke(app, ["sync", "-c", str(config_file)])
        assert result.exit_code == 6


class TestTeardownCommand:
    """Tests for one-shot removal."""

    def test_removes_rules(self, config_file, engine, mock_root):
        """teardown deletes every managed rule."""
        with _use_engine("sync", engine):
            runner.invoke(app, ["sync", "-c", str(config_file)])

        with _use_engine("teardown", engine), patch(
            "ofw.services.resync.IptablesEngine.create", return_value=engine
        ):
            result = runner.invoke(app, ["teardown", "-c", str(config_file)])

        assert result.exit_code == 0
        assert engine.rules_in("nat", "POSTROUTING") == []
        assert engine.rules_in("filter", "FORWARD") == []
        assert engine.rules_in("filter", "OVERLAY-FORWARD") == []


class TestRunCommand:
    """Tests for the long-running command wiring."""

    def test_starts_supervisor(self, config_file, engine, mock_root):
        """run starts one loop per rule set with the configured period."""
        with _use_engine("run", engine), patch(
            "ofw.commands.run.ResyncSupervisor"
        ) as supervisor_cls, patch("ofw.commands.run.signal.signal"):
            result = runner.invoke(app, ["run", "-c", str(config_file), "-p", "12"])

        assert result.exit_code == 0
        args, kwargs = supervisor_cls.call_args
        assert [name for name, _ in args[1]] == ["masquerade", "forward"]
        assert args[2] == 12
        assert kwargs["binary"] == "iptables"
        supervisor = supervisor_cls.return_value
        supervisor.start.assert_called_once()
        supervisor.stop.assert_called_once()
        assert supervisor.wait.call_count == 2

    def test_invalid_period(self, config_file, engine, mock_root):
        """An out-of-range period is a validation error."""
        with _use_engine("run", engine), patch("ofw.commands.run.ResyncSupervisor") as supervisor_cls:
            result = runner.invoke(app, ["run", "-c", str(config_file), "-p", "0"])

        assert result.exit_code == 3
        supervisor_cls.assert_not_called()

    def test_interrupt_during_start_stops_loops(self, config_file, engine, mock_root):
        """Ctrl+C while threads are starting still stops every loop."""
        with _use_engine("run", engine), patch(
            "ofw.commands.run.ResyncSupervisor"
        ) as supervisor_cls, patch("ofw.commands.run.signal.signal"):
            supervisor = supervisor_cls.return_value
            supervisor.start.side_effect = KeyboardInterrupt
            result = runner.invoke(app, ["run", "-c", str(config_file)])

        assert result.exit_code == 0
        supervisor.stop.assert_called_once()
        supervisor.wait.assert_called_once()


class FreshHost:
    """subprocess.run stand-in for a host with no overlay rules or chains."""

    def __init__(self) -> None:
        self.commands: list[list[str]] = []

    def __call__(self, command, **kwargs) -> subprocess.CompletedProcess:
        self.commands.append(command)
        if "--version" in command:
            return subprocess.CompletedProcess(command, 0, "iptables v1.8.7 (legacy)\n", "")
        if "-C" in command and command[-1] == "OVERLAY-FORWARD":
            return subprocess.CompletedProcess(
                command, 2, "",
                "iptables v1.8.7 (legacy): Couldn't load target `OVERLAY-FORWARD':"
                "No such file or directory\n\nTry `iptables -h' for more information.\n",
            )
        if "-C" in command:
            return subprocess.CompletedProcess(
                command, 1, "",
                "iptables: Bad rule (does a matching rule exist in that chain?).\n",
            )
        return subprocess.CompletedProcess(command, 0, "", "")

    def mutations(self) -> list[list[str]]:
        return [c for c in self.commands if {"-N", "-A", "-I", "-D"} & set(c)]


@pytest.fixture
def fresh_host() -> Generator[FreshHost, None, None]:
    """Real iptables engine running against a host with nothing applied."""
    host = FreshHost()
    with patch("ofw.core.executor.shutil.which", return_value="/usr/sbin/iptables"), patch(
        "ofw.core.executor.subprocess.run", side_effect=host
    ):
        yield host


class TestFreshHost:
    """Commands on a host where the custom chains do not exist yet."""

    def test_check_reports_missing_chain_as_drift(self, config_file, fresh_host, mock_root):
        """A jump to a chain that is not there yet is drift, not an error."""
        result = runner.invoke(app, ["check", "-c", str(config_file)])

        assert result.exit_code == 1
        assert fresh_host.mutations() == []

    def test_dry_run_sync_previews_without_changes(self, config_file, fresh_host):
        """sync --dry-run walks a full tick without touching the firewall."""
        result = runner.invoke(app, ["sync", "--dry-run", "-c", str(config_file)])

        assert result.exit_code == 0
        assert fresh_host.mutations() == []
        assert "OVERLAY-FORWARD" in result.output
