"""Lifecycle trace log for plugin runs.

The executor, the binary plugin adapter and the exec plugin record start,
exit and cancellation events here. Tracing is off unless
``PLUGIN_HOST_TRACE_LOG`` names a file; the file is created readable by
its owner only. Warnings and errors go through ``logging`` instead.

Usage:
    from plugin_host.trace import trace

    trace("Executor", "start: plugin=exec timeout=30s")
"""

import os
from datetime import datetime
from typing import Optional

TRACE_ENV_VAR = "PLUGIN_HOST_TRACE_LOG"


def trace_path() -> Optional[str]:
    """Return the trace file path, or None when tracing is off."""
    return os.environ.get(TRACE_ENV_VAR) or None


def trace(component: str, msg: str) -> None:
    """Append one timestamped line to the trace file.

    Never raises: a trace file that cannot be written is ignored.
    """
    path = trace_path()
    if path is None:
        return
    try:
        parent = os.path.dirname(os.path.abspath(path))
        os.makedirs(parent, mode=0o700, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            ts = datetime.now().strftime("%H:%M:%S.%f")[:-3]
            f.write(f"[{ts}] [{component}] {msg}\n")
    except OSError:
        pass
