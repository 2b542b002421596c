"""Adapter for external executable plugins.

A binary plugin is started once per call. The adapter writes a single
JSON-RPC 2.0 request to the process's stdin, waits for it to exit, and
reads its whole stdout as one JSON-RPC response:

    request:  {"jsonrpc": "2.0", "id": "1", "method": "execute", "params": {...}}
    response: {"jsonrpc": "2.0", "id": "1",
               "result": {"stdout": "", "stderr": "", "exit_code": 0,
                          "data": {}, "error": ""}}
          or: {"jsonrpc": "2.0", "id": "1",
               "error": {"code": 2, "message": "bad input"}}

Executables that do not speak the protocol still work: empty stdout
yields the raw exit code and stderr, and stdout that is not a JSON-RPC
response is passed through as plain output.
"""

import json
import logging
import os
import subprocess
import time
from typing import Any, Dict, Optional

from ..trace import trace
from .base import PluginInfo, PluginStatus
from .cancel import CancelToken, CancelledException
from .errors import PluginError
from .types import PluginInput, PluginManifest, PluginOutput

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
REQUEST_ID = "1"
EXECUTE_METHOD = "execute"


def build_request(plugin_input: PluginInput) -> Dict[str, Any]:
    """Build the JSON-RPC request object for one call."""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": REQUEST_ID,
        "method": EXECUTE_METHOD,
        "params": plugin_input.to_dict(),
    }


def parse_response(
    stdout: str,
    stderr: str,
    exit_code: int,
) -> PluginOutput:
    """Turn what a finished plugin process produced into a PluginOutput.

    Args:
        stdout: Everything the process wrote to stdout.
        stderr: Everything the process wrote to stderr.
        exit_code: The process exit code.

    Returns:
        Structured output for a JSON-RPC response, plain output otherwise.
    """
    if not stdout:
        return PluginOutput(stdout="", stderr=stderr, exit_code=exit_code)

    plain = PluginOutput(stdout=stdout, stderr=stderr, exit_code=exit_code)
    try:
        response = json.loads(stdout)
    except ValueError:
        logger.debug("Plugin stdout is not JSON; returning it as plain output")
        return plain

    if not isinstance(response, dict):
        return plain

    error = response.get("error")
    if isinstance(error, dict):
        message = str(error.get("message") or "")
        try:
            code = int(error.get("code") or 0)
        except (TypeError, ValueError):
            code = 0
        return PluginOutput(
            stderr=message,
            exit_code=code,
            error=message or "plugin returned an error",
        )

    result = response.get("result")
    if isinstance(result, dict):
        try:
            return PluginOutput.from_dict(result)
        except (TypeError, ValueError):
            return plain

    return plain


class BinaryPlugin:
    """Plugin backed by an external executable.

    Each call spawns the executable with the host environment overlaid by
    ``input.env`` and the working directory set to ``input.working_dir``.
    Cancelling the token kills the process.
    """

    def __init__(self, manifest: PluginManifest, exec_path: str):
        self._manifest = manifest
        self._exec_path = exec_path

    @property
    def name(self) -> str:
        return self._manifest.name

    @property
    def exec_path(self) -> str:
        return self._exec_path

    def execute(self, cancel_token: CancelToken, plugin_input: PluginInput) -> PluginOutput:
        cancel_token.raise_if_cancelled()

        request = json.dumps(build_request(plugin_input))

        env = os.environ.copy()
        if plugin_input.env:
            env.update(plugin_input.env)

        trace("BinaryPlugin", f"spawn: plugin={self.name} exec={self._exec_path}")
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                [self._exec_path],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding='utf-8',
                errors='replace',
                env=env,
                cwd=plugin_input.working_dir or None,
            )
        except OSError as exc:
            raise PluginError(self.name, "failed to execute binary", cause=exc) from exc

        def kill():
            self._kill(proc)

        cancel_token.on_cancel(kill)
        try:
            stdout, stderr = proc.communicate(input=request)
        finally:
            cancel_token.remove_callback(kill)

        duration = time.monotonic() - start
        trace(
            "BinaryPlugin",
            f"exit: plugin={self.name} code={proc.returncode} duration={duration:.3f}s",
        )

        if cancel_token.is_cancelled:
            raise CancelledException(f"binary plugin '{self.name}' was cancelled")

        output = parse_response(stdout, stderr, proc.returncode)
        output.duration = duration
        return output

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        if proc.poll() is None:
            try:
                proc.kill()
            except OSError:
                pass

    def validate(self) -> None:
        """Check that the executable exists and can be executed.

        Raises:
            PluginError: If the file is missing or not executable.
        """
        if not os.path.isfile(self._exec_path):
            raise PluginError(self.name, f"executable not found: {self._exec_path}")
        if not os.access(self._exec_path, os.X_OK):
            raise PluginError(self.name, f"file is not executable: {self._exec_path}")

    def describe(self) -> PluginInfo:
        return PluginInfo(
            manifest=self._manifest,
            capabilities=["execute"],
            status=PluginStatus.READY,
        )


def create_binary_plugin(
    manifest: PluginManifest,
    exec_path: Optional[str] = None,
) -> BinaryPlugin:
    """Factory function to create a binary plugin from its manifest."""
    return BinaryPlugin(manifest, exec_path or manifest.executable)
