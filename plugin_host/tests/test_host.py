"""Tests for PluginHost wiring."""

import stat
import sys
import textwrap

import pytest

from plugin_host.config import PluginHostConfig
from plugin_host.host import PluginHost
from plugin_host.plugins.base import PluginStatus
from plugin_host.plugins.cancel import CancelledException
from plugin_host.plugins.errors import PermissionDeniedError, PluginNotFoundError
from plugin_host.plugins.permission import AutoApprover, DenyApprover
from plugin_host.plugins.types import PluginInput


def _write_plugin(plugin_dir, name, permissions=("execute:echo",)):
    """Create a binary plugin directory with a manifest and a script."""
    directory = plugin_dir / name
    directory.mkdir(parents=True)
    script = directory / "run.py"
    script.write_text(textwrap.dedent(f"""\
        #!{sys.executable}
        import json, sys
        request = json.load(sys.stdin)
        print(json.dumps({{"jsonrpc": "2.0", "id": request["id"],
                          "result": {{"stdout": "hello from {name}", "exit_code": 0}}}}))
        """))
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    perm_lines = "\n".join(f"  - {p}" for p in permissions)
    (directory / "plugin-manifest.yaml").write_text(
        f"name: {name}\nversion: 1.0.0\ntype: binary\nexecutable: run.py\n"
        f"permissions:\n{perm_lines}\n"
    )


@pytest.fixture
def config(tmp_path):
    return PluginHostConfig(
        config_dir=str(tmp_path / "config"),
        plugin_dir=str(tmp_path / "plugins"),
        default_timeout=10,
        retry_base_delay=0.01,
    )


class TestPluginHost:

    def test_exec_plugin_registered(self, config):
        host = PluginHost(config, approver=DenyApprover())
        assert "exec" in host.registry.list()

    def test_builtin_runs_without_approval(self, config):
        host = PluginHost(config, approver=DenyApprover())

        output = host.execute(
            "exec", PluginInput(command=sys.executable, args=["-c", "print('hi')"])
        )

        assert output.success
        assert output.stdout.strip() == "hi"
        assert host.stats()["exec"].success_runs == 1

    def test_discovered_plugin_runs_after_approval(self, config, tmp_path):
        _write_plugin(tmp_path / "plugins", "greeter")
        host = PluginHost(config, approver=AutoApprover())

        assert host.discover() == ["greeter"]
        info = {i.manifest.name: i for i in host.plugin_info()}
        assert info["greeter"].status == PluginStatus.PENDING_APPROVAL

        output = host.execute("greeter", PluginInput(command="greet"))

        assert output.stdout == "hello from greeter"
        assert host.permissions.get_approved_permissions("greeter") == ["execute:echo"]
        info = {i.manifest.name: i for i in host.plugin_info()}
        assert info["greeter"].status == PluginStatus.READY

    def test_discovered_plugin_denied(self, config, tmp_path):
        _write_plugin(tmp_path / "plugins", "greeter")
        host = PluginHost(config, approver=DenyApprover())
        host.discover()

        with pytest.raises(PermissionDeniedError) as exc_info:
            host.execute("greeter", PluginInput())

        assert exc_info.value.plugin_name == "greeter"
        assert host.stats() == {}

    def test_shutdown_cancels_calls(self, config):
        host = PluginHost(config, approver=DenyApprover())
        host.shutdown()

        with pytest.raises(CancelledException):
            host.execute("exec", PluginInput(command=sys.executable, args=["-V"]))

    def test_approver_from_config(self, config):
        config.approver = "auto"
        host = PluginHost(config)
        assert host.permissions.approver.name == "auto"

    def test_discovered_plugin_cannot_claim_builtin_name(self, config, tmp_path):
        _write_plugin(tmp_path / "plugins", "file-ops", permissions=("execute:rm", "credential"))
        host = PluginHost(config, approver=DenyApprover())

        assert host.discover() == []
        with pytest.raises(PluginNotFoundError):
            host.execute("file-ops", PluginInput(command="rm"))
        assert host.permissions.get_approved_permissions("file-ops") is None
