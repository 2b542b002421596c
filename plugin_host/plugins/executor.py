"""Executor: timeouts, retries and parallel fan-out around any plugin.

The executor knows nothing about what a plugin does. It wraps a single
``Plugin.execute`` call with a deadline, retries calls that fail with a
recoverable error, and runs batches of calls concurrently on worker
threads. Every wait observes the caller's ``CancelToken``.

Per call the state moves from PENDING to RUNNING and ends in COMPLETED,
TIMED_OUT or FAILED.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ..retry_utils import calculate_backoff, interruptible_sleep
from ..trace import trace
from .base import Plugin
from .cancel import CancelToken, CancelledException
from .errors import PluginError, PluginTimeoutError
from .stats import StatsCollector
from .types import PluginInput, PluginOutput

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
MAX_TIMEOUT = 300.0
DEFAULT_RETRY_BASE_DELAY = 1.0


class ExecutionState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class ExecutorConfig:
    """Timing configuration for PluginExecutor.

    Attributes:
        default_timeout: Seconds allowed when the input sets no timeout.
        max_timeout: Upper bound for any requested timeout.
        retry_base_delay: Backoff after the first failed attempt; doubles
            with every further attempt.
    """
    default_timeout: float = DEFAULT_TIMEOUT
    max_timeout: float = MAX_TIMEOUT
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY

    def normalized(self) -> 'ExecutorConfig':
        """Return a copy with unusable values replaced by the defaults."""
        max_timeout = self.max_timeout if self.max_timeout > 0 else MAX_TIMEOUT
        default_timeout = self.default_timeout if self.default_timeout > 0 else DEFAULT_TIMEOUT
        retry_base_delay = self.retry_base_delay if self.retry_base_delay >= 0 else DEFAULT_RETRY_BASE_DELAY
        return ExecutorConfig(
            default_timeout=min(default_timeout, max_timeout),
            max_timeout=max_timeout,
            retry_base_delay=retry_base_delay,
        )


@dataclass
class PluginExecution:
    """One entry of a parallel batch."""
    plugin: Plugin
    plugin_input: PluginInput


@dataclass
class PluginExecutionResult:
    """Outcome of one entry of a parallel batch.

    Exactly one of ``output`` and ``error`` is set. ``index`` is the
    position of the entry in the submitted batch.
    """
    index: int
    output: Optional[PluginOutput] = None
    error: Optional[BaseException] = None

    @property
    def success(self) -> bool:
        return self.error is None and self.output is not None and self.output.success


def plugin_name_of(plugin: Plugin) -> str:
    """Best-effort name of a plugin for error messages and stats."""
    name = getattr(plugin, "name", None)
    if isinstance(name, str) and name:
        return name
    try:
        return plugin.describe().manifest.name
    except Exception:
        return type(plugin).__name__


class PluginExecutor:
    """Runs plugins with deadlines, retries and fan-out.

    Usage:
        executor = PluginExecutor(ExecutorConfig(default_timeout=10))
        output = executor.execute(token, plugin, PluginInput(command="ls"))
    """

    def __init__(
        self,
        config: Optional[ExecutorConfig] = None,
        stats: Optional[StatsCollector] = None,
    ):
        self._config = (config or ExecutorConfig()).normalized()
        self._stats = stats

    @property
    def config(self) -> ExecutorConfig:
        return self._config

    @property
    def stats(self) -> Optional[StatsCollector]:
        return self._stats

    def effective_timeout(self, plugin_input: PluginInput) -> float:
        """Timeout for one call: the requested one capped at the maximum,
        or the default when none was requested."""
        requested = plugin_input.timeout or 0
        if requested > 0:
            return min(requested, self._config.max_timeout)
        return self._config.default_timeout

    def execute(
        self,
        cancel_token: CancelToken,
        plugin: Plugin,
        plugin_input: PluginInput,
    ) -> PluginOutput:
        """Run one plugin call under a deadline.

        The plugin runs on a worker thread with a child token that is
        cancelled when the deadline passes or the caller's token is
        cancelled. The caller stops waiting as soon as either happens.

        Returns:
            The plugin output with ``duration`` set to the measured time.

        Raises:
            PluginTimeoutError: The deadline passed first.
            CancelledException: The caller's token was cancelled.
            Exception: Whatever the plugin raised.
        """
        name = plugin_name_of(plugin)
        cancel_token.raise_if_cancelled()

        timeout = self.effective_timeout(plugin_input)
        call_token = cancel_token.child(timeout=timeout)
        done = threading.Event()
        outcome = {}
        state = ExecutionState.PENDING

        def run():
            try:
                outcome["output"] = plugin.execute(call_token, plugin_input)
            except BaseException as exc:
                outcome["error"] = exc
            finally:
                done.set()

        call_token.on_cancel(done.set)

        trace("Executor", f"start: plugin={name} timeout={timeout:g}s")
        start = time.monotonic()
        state = ExecutionState.RUNNING
        worker = threading.Thread(target=run, name=f"plugin-{name}", daemon=True)
        worker.start()
        try:
            done.wait()
            duration = time.monotonic() - start

            if "output" not in outcome and "error" not in outcome:
                # Woken by the token; the worker is still running.
                if call_token.deadline_exceeded:
                    state = ExecutionState.TIMED_OUT
                    raise PluginTimeoutError(name, timeout)
                state = ExecutionState.FAILED
                raise CancelledException(f"execution of plugin '{name}' was cancelled")

            error = outcome.get("error")
            if error is not None:
                if call_token.deadline_exceeded:
                    state = ExecutionState.TIMED_OUT
                    raise PluginTimeoutError(name, timeout, cause=error) from error
                state = ExecutionState.FAILED
                if cancel_token.is_cancelled and not isinstance(error, CancelledException):
                    raise CancelledException(
                        f"execution of plugin '{name}' was cancelled"
                    ) from error
                raise error

            output = outcome["output"]
            if output is None:
                state = ExecutionState.FAILED
                raise PluginError(name, "plugin returned no output")
            output.duration = duration
            state = ExecutionState.COMPLETED
            return output
        finally:
            call_token.cancel()
            elapsed = time.monotonic() - start
            trace("Executor", f"end: plugin={name} state={state.value} duration={elapsed:.3f}s")
            if self._stats is not None:
                self._stats.record(name, elapsed, state == ExecutionState.COMPLETED)

    def execute_with_retry(
        self,
        cancel_token: CancelToken,
        plugin: Plugin,
        plugin_input: PluginInput,
        max_retries: int,
    ) -> PluginOutput:
        """Run a plugin, retrying recoverable failures with exponential backoff.

        Attempts are numbered ``0..max_retries``. Only errors whose
        ``recoverable`` attribute is true are retried; anything else is
        raised at once. The backoff sleep ends early when the token is
        cancelled.

        Raises:
            PluginError: "max retries exceeded", chained to the last error.
            CancelledException: The token was cancelled during backoff.
        """
        name = plugin_name_of(plugin)
        last_error: Optional[BaseException] = None

        for attempt in range(max(max_retries, 0) + 1):
            try:
                return self.execute(cancel_token, plugin, plugin_input)
            except CancelledException:
                raise
            except Exception as exc:
                if not getattr(exc, "recoverable", False):
                    raise
                last_error = exc

            if attempt >= max_retries:
                break

            delay = calculate_backoff(attempt, base_delay=self._config.retry_base_delay)
            logger.info(
                "Plugin '%s' failed with a recoverable error (attempt %d/%d), retrying in %.2fs: %s",
                name, attempt + 1, max_retries + 1, delay, last_error,
            )
            interruptible_sleep(delay, cancel_token=cancel_token)

        raise PluginError(name, "max retries exceeded", cause=last_error) from last_error

    def execute_parallel(
        self,
        cancel_token: CancelToken,
        executions: List[PluginExecution],
    ) -> List[PluginExecutionResult]:
        """Run a batch of plugin calls concurrently.

        Each call runs through ``execute`` on its own thread and writes
        only its own result slot. Every worker signals completion whether
        it succeeded or failed; the call returns once all have, or raises
        as soon as the token is cancelled.

        Returns:
            One result per execution, in submission order.

        Raises:
            CancelledException: The token was cancelled before all finished.
        """
        count = len(executions)
        results: List[Optional[PluginExecutionResult]] = [None] * count
        if count == 0:
            return []

        cancel_token.raise_if_cancelled()

        all_done = threading.Event()
        remaining = [count]
        remaining_lock = threading.Lock()

        def worker(index: int, execution: PluginExecution) -> None:
            try:
                output = self.execute(cancel_token, execution.plugin, execution.plugin_input)
                results[index] = PluginExecutionResult(index=index, output=output)
            except BaseException as exc:
                results[index] = PluginExecutionResult(index=index, error=exc)
            finally:
                with remaining_lock:
                    remaining[0] -= 1
                    finished = remaining[0] == 0
                if finished:
                    all_done.set()

        cancel_token.on_cancel(all_done.set)

        for index, execution in enumerate(executions):
            threading.Thread(
                target=worker,
                args=(index, execution),
                name=f"plugin-parallel-{index}",
                daemon=True,
            ).start()

        all_done.wait()
        cancel_token.remove_callback(all_done.set)

        if cancel_token.is_cancelled:
            raise CancelledException("parallel plugin execution was cancelled")

        return [r for r in results if r is not None]
