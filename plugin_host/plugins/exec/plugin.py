"""Built-in plugin that runs external commands.

Commands are never run through a shell. A command containing shell
metacharacters is rejected rather than interpreted, so pipes, redirections
and substitutions have no effect.
"""

import os
import re
import shlex
import shutil
import subprocess
import time
from typing import Dict, Iterable, List, Optional

from ...trace import trace
from ..base import PluginInfo, PluginStatus
from ..cancel import CancelToken, CancelledException
from ..errors import PluginError
from ..types import (
    Permission,
    PermissionType,
    PluginInput,
    PluginManifest,
    PluginOutput,
    PluginType,
)

PLUGIN_NAME = "exec"
PLUGIN_VERSION = "1.0.0"

DEFAULT_MAX_OUTPUT_CHARS = 50000

# Characters that would need a shell to mean anything.
SHELL_METACHAR_PATTERN = re.compile(r'[;|&$`()<>\n\r]')

# Variables kept from the host environment in sandbox mode.
SANDBOX_ENV_VARS = ("PATH", "HOME", "USER", "LANG")


class ExecPlugin:
    """Plugin that executes a command and captures its output.

    Input:
        command: Executable name or path. Without ``args`` it may hold the
            whole command line, which is split like a shell would.
        args: Argument list.
        env: Extra environment variables.
        stdin: Text fed to the process.
        working_dir: Directory to run in.

    Configuration:
        allowed_commands: If given, only these executables (by base name)
            may run.
        sandbox: Start from a minimal environment instead of the host's.
        extra_paths: Additional directories searched for the executable.
        max_output_chars: Maximum characters kept from stdout and stderr.
    """

    def __init__(
        self,
        allowed_commands: Optional[Iterable[str]] = None,
        sandbox: bool = False,
        extra_paths: Optional[List[str]] = None,
        max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
    ):
        self._allowed_commands = set(allowed_commands) if allowed_commands is not None else None
        self._sandbox = sandbox
        self._extra_paths: List[str] = list(extra_paths or [])
        self._max_output_chars = max_output_chars

    @property
    def name(self) -> str:
        return PLUGIN_NAME

    def describe(self) -> PluginInfo:
        manifest = PluginManifest(
            name=PLUGIN_NAME,
            version=PLUGIN_VERSION,
            type=PluginType.BUILTIN,
            description="Execute external commands",
            author="plugin-host",
            permissions=[
                Permission(PermissionType.EXECUTE, "*", "Execute arbitrary commands"),
            ],
        )
        return PluginInfo(
            manifest=manifest,
            capabilities=["execute", "capture-output", "sandbox"],
            status=PluginStatus.READY,
        )

    def validate(self) -> None:
        if self._max_output_chars <= 0:
            raise ValueError("max_output_chars must be positive")

    def _build_argv(self, plugin_input: PluginInput) -> List[str]:
        command = plugin_input.command.strip()
        if not command:
            raise PluginError(self.name, "command must be provided")

        if SHELL_METACHAR_PATTERN.search(command):
            raise PluginError(self.name, f"command contains shell metacharacters: {command!r}")

        for arg in plugin_input.args:
            if "\x00" in arg:
                raise PluginError(self.name, "arguments must not contain NUL bytes")

        if plugin_input.args:
            argv = [command] + list(plugin_input.args)
        else:
            argv = shlex.split(command)

        if self._allowed_commands is not None:
            exe_name = os.path.basename(argv[0])
            if argv[0] not in self._allowed_commands and exe_name not in self._allowed_commands:
                raise PluginError(self.name, f"command not allowed: {argv[0]}")

        return argv

    def _build_env(self, plugin_input: PluginInput) -> Dict[str, str]:
        if self._sandbox:
            env = {k: os.environ[k] for k in SANDBOX_ENV_VARS if k in os.environ}
        else:
            env = os.environ.copy()

        if self._extra_paths:
            path_sep = os.pathsep
            env['PATH'] = env.get('PATH', '') + path_sep + path_sep.join(self._extra_paths)

        env.update(plugin_input.env)
        return env

    def _truncate(self, text: str) -> tuple:
        if len(text) > self._max_output_chars:
            return text[:self._max_output_chars], True
        return text, False

    def execute(self, cancel_token: CancelToken, plugin_input: PluginInput) -> PluginOutput:
        cancel_token.raise_if_cancelled()

        argv = self._build_argv(plugin_input)
        env = self._build_env(plugin_input)

        working_dir = plugin_input.working_dir or None
        if working_dir and not os.path.isdir(working_dir):
            raise PluginError(self.name, f"working directory does not exist: {working_dir}")

        metadata = {"command": " ".join(argv)}

        # Resolve executable via PATH (including extra_paths)
        resolved = shutil.which(argv[0], path=env.get('PATH'))
        if resolved is None:
            return PluginOutput(
                exit_code=-1,
                error=f"executable '{argv[0]}' not found in PATH",
                metadata=metadata,
            )
        argv[0] = resolved

        # Arguments may carry secrets; only the executable is traced.
        exe_name = os.path.basename(resolved)
        trace("ExecPlugin", f"execute: {exe_name} ({len(argv) - 1} args)")

        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding='utf-8',
                errors='replace',
                env=env,
                cwd=working_dir,
            )
        except OSError as exc:
            return PluginOutput(
                exit_code=-1,
                error=f"failed to start command: {exc}",
                duration=time.monotonic() - start,
                metadata=metadata,
            )

        def kill():
            _kill(proc)

        cancel_token.on_cancel(kill)
        try:
            stdout, stderr = proc.communicate(input=plugin_input.stdin or None)
        finally:
            cancel_token.remove_callback(kill)
        duration = time.monotonic() - start

        if cancel_token.is_cancelled:
            trace("ExecPlugin", f"cancelled: {exe_name}")
            raise CancelledException(f"command was cancelled: {exe_name}")

        trace("ExecPlugin", f"exit: code={proc.returncode} duration={duration:.3f}s")

        stdout, stdout_truncated = self._truncate(stdout)
        stderr, stderr_truncated = self._truncate(stderr)
        if stdout_truncated or stderr_truncated:
            metadata["truncated"] = "true"

        return PluginOutput(
            stdout=stdout,
            stderr=stderr,
            exit_code=proc.returncode,
            duration=duration,
            metadata=metadata,
        )


def _kill(proc: subprocess.Popen) -> None:
    if proc.poll() is None:
        try:
            proc.kill()
        except OSError:
            pass


def create_plugin(**kwargs) -> ExecPlugin:
    """Factory function to create the exec plugin instance."""
    return ExecPlugin(**kwargs)
