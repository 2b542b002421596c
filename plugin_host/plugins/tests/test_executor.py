"""Tests for PluginExecutor: timeouts, retries and parallel fan-out."""

import threading
import time

import pytest

from ..cancel import CancelledException, CancelToken
from ..errors import PluginError, PluginTimeoutError
from ..executor import (
    ExecutorConfig,
    PluginExecution,
    PluginExecutor,
    plugin_name_of,
)
from ..stats import StatsCollector
from ..types import PluginInput, PluginOutput
from .fakes import FakePlugin, flaky_handler, sleeping_handler


@pytest.fixture
def executor():
    return PluginExecutor(ExecutorConfig(default_timeout=5, max_timeout=10, retry_base_delay=0.01))


class TestEffectiveTimeout:

    def test_default_when_unset(self, executor):
        assert executor.effective_timeout(PluginInput()) == 5

    def test_requested_timeout_used(self, executor):
        assert executor.effective_timeout(PluginInput(timeout=2)) == 2

    def test_requested_timeout_capped(self, executor):
        assert executor.effective_timeout(PluginInput(timeout=60)) == 10

    def test_config_normalized(self):
        executor = PluginExecutor(ExecutorConfig(default_timeout=-1, max_timeout=0))
        assert executor.config.default_timeout == 30
        assert executor.config.max_timeout == 300


class TestExecute:

    def test_success_stamps_duration(self, executor):
        def handler(token, plugin_input):
            time.sleep(0.05)
            return PluginOutput(stdout="done", duration=999)

        output = executor.execute(CancelToken(), FakePlugin(handler=handler), PluginInput())

        assert output.stdout == "done"
        assert 0.04 <= output.duration < 5

    def test_plugin_error_propagates(self, executor):
        def handler(token, plugin_input):
            raise PluginError("fake", "bad input")

        with pytest.raises(PluginError, match="bad input"):
            executor.execute(CancelToken(), FakePlugin(handler=handler), PluginInput())

    def test_timeout_is_recoded(self, executor):
        plugin = FakePlugin(name="sleeper", handler=sleeping_handler(5))

        start = time.monotonic()
        with pytest.raises(PluginTimeoutError) as exc_info:
            executor.execute(CancelToken(), plugin, PluginInput(timeout=0.1))
        elapsed = time.monotonic() - start

        err = exc_info.value
        assert err.plugin_name == "sleeper"
        assert err.timeout == 0.1
        assert err.suggestion == "Increase timeout or simplify the operation"
        assert "interrupted" not in err.message
        assert elapsed < 2

    def test_timeout_with_uncooperative_plugin(self, executor):
        plugin = FakePlugin(handler=sleeping_handler(1, observe_token=False))

        start = time.monotonic()
        with pytest.raises(PluginTimeoutError):
            executor.execute(CancelToken(), plugin, PluginInput(timeout=0.1))

        assert time.monotonic() - start < 0.9

    def test_parent_cancellation(self, executor):
        token = CancelToken()
        plugin = FakePlugin(handler=sleeping_handler(5))
        threading.Timer(0.1, token.cancel).start()

        with pytest.raises(CancelledException):
            executor.execute(token, plugin, PluginInput())

    def test_already_cancelled_token(self, executor):
        token = CancelToken()
        token.cancel()
        plugin = FakePlugin()

        with pytest.raises(CancelledException):
            executor.execute(token, plugin, PluginInput())
        assert plugin.calls == 0

    def test_none_output_is_an_error(self, executor):
        plugin = FakePlugin(handler=lambda token, plugin_input: None)
        with pytest.raises(PluginError, match="no output"):
            executor.execute(CancelToken(), plugin, PluginInput())

    def test_records_stats(self):
        stats = StatsCollector()
        executor = PluginExecutor(stats=stats)

        def failing(token, plugin_input):
            raise PluginError("counted", "nope")

        executor.execute(CancelToken(), FakePlugin(name="counted"), PluginInput())
        with pytest.raises(PluginError):
            executor.execute(CancelToken(), FakePlugin(name="counted", handler=failing), PluginInput())

        recorded = stats.get_stats("counted")
        assert recorded.total_runs == 2
        assert recorded.success_runs == 1
        assert recorded.failed_runs == 1


class TestExecuteWithRetry:

    def test_recovers_on_third_attempt(self, executor):
        plugin = FakePlugin(handler=flaky_handler(2))

        output = executor.execute_with_retry(CancelToken(), plugin, PluginInput(), max_retries=3)

        assert output.stdout == "recovered"
        assert plugin.calls == 3

    def test_non_recoverable_not_retried(self, executor):
        plugin = FakePlugin(handler=flaky_handler(5, recoverable=False))

        with pytest.raises(PluginError, match="failure 1"):
            executor.execute_with_retry(CancelToken(), plugin, PluginInput(), max_retries=3)
        assert plugin.calls == 1

    def test_exhaustion_wraps_last_error(self, executor):
        plugin = FakePlugin(name="flaky", handler=flaky_handler(10))

        with pytest.raises(PluginError, match="max retries exceeded") as exc_info:
            executor.execute_with_retry(CancelToken(), plugin, PluginInput(), max_retries=2)

        assert plugin.calls == 3
        assert "failure 3" in str(exc_info.value.__cause__)

    def test_zero_retries_runs_once(self, executor):
        plugin = FakePlugin(handler=flaky_handler(1))

        with pytest.raises(PluginError, match="max retries exceeded"):
            executor.execute_with_retry(CancelToken(), plugin, PluginInput(), max_retries=0)
        assert plugin.calls == 1

    def test_cancel_during_backoff(self):
        executor = PluginExecutor(ExecutorConfig(retry_base_delay=5))
        token = CancelToken()
        plugin = FakePlugin(handler=flaky_handler(10))
        threading.Timer(0.2, token.cancel).start()

        start = time.monotonic()
        with pytest.raises(CancelledException):
            executor.execute_with_retry(token, plugin, PluginInput(), max_retries=3)

        assert time.monotonic() - start < 3
        assert plugin.calls == 1


class TestExecuteParallel:

    def test_all_succeed_returns_promptly(self, executor):
        plugins = [FakePlugin(name=f"p{i}") for i in range(8)]
        executions = [PluginExecution(p, PluginInput()) for p in plugins]

        start = time.monotonic()
        results = executor.execute_parallel(CancelToken(), executions)

        assert time.monotonic() - start < 2
        assert len(results) == 8
        assert all(r.success for r in results)

    def test_results_keep_submission_order(self, executor):
        def delayed(index):
            def handler(token, plugin_input):
                time.sleep(0.05 * (3 - index))
                return PluginOutput(stdout=str(index))
            return handler

        executions = [
            PluginExecution(FakePlugin(handler=delayed(i)), PluginInput()) for i in range(3)
        ]

        results = executor.execute_parallel(CancelToken(), executions)

        assert [r.index for r in results] == [0, 1, 2]
        assert [r.output.stdout for r in results] == ["0", "1", "2"]

    def test_mixed_outcomes(self, executor):
        def failing(token, plugin_input):
            raise PluginError("bad", "broken")

        executions = [
            PluginExecution(FakePlugin(name="good"), PluginInput()),
            PluginExecution(FakePlugin(name="bad", handler=failing), PluginInput()),
        ]

        results = executor.execute_parallel(CancelToken(), executions)

        assert results[0].success
        assert results[0].error is None
        assert isinstance(results[1].error, PluginError)
        assert results[1].output is None

    def test_empty_batch(self, executor):
        assert executor.execute_parallel(CancelToken(), []) == []

    def test_cancellation_returns_early(self, executor):
        token = CancelToken()
        executions = [
            PluginExecution(FakePlugin(handler=sleeping_handler(5, observe_token=False)), PluginInput())
            for _ in range(3)
        ]
        threading.Timer(0.1, token.cancel).start()

        start = time.monotonic()
        with pytest.raises(CancelledException):
            executor.execute_parallel(token, executions)

        assert time.monotonic() - start < 2


class TestPluginNameOf:

    def test_uses_name_attribute(self):
        assert plugin_name_of(FakePlugin(name="named")) == "named"

    def test_falls_back_to_manifest(self):
        class Anonymous:
            def describe(self):
                return FakePlugin(name="from-manifest").describe()

        assert plugin_name_of(Anonymous()) == "from-manifest"
