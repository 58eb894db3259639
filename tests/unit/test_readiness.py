"""Unit tests for readiness polling."""

from __future__ import annotations

import pytest

from vaultdb_cli.bootstrap import ReadinessPoller, ReadinessResult, wait_until_ready
from vaultdb_cli.errors import ReadinessTimeout


class SequenceProbe:
    """Probe returning queued results; exceptions in the queue are raised."""

    def __init__(self, results):
        self.results = list(results)
        self.calls = 0

    def __call__(self) -> bool:
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class SleepRecorder:
    def __init__(self):
        self.intervals: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.intervals.append(seconds)


class TestWaitUntilReady:
    """Tests for wait_until_ready."""

    def test_ready_immediately(self):
        """Test a ready probe returns without sleeping."""
        sleep = SleepRecorder()
        result = wait_until_ready(lambda: True, interval=5, max_attempts=3, sleep=sleep)

        assert result.ready
        assert result.attempts == 1
        assert sleep.intervals == []

    @pytest.mark.parametrize("failures", [1, 4])
    def test_sleeps_once_per_failure(self, failures):
        """Test N not-ready answers cost N+1 probes and N sleeps."""
        probe = SequenceProbe([False] * failures + [True])
        sleep = SleepRecorder()

        result = wait_until_ready(probe, interval=2.5, sleep=sleep)

        assert result.ready
        assert probe.calls == failures + 1
        assert sleep.intervals == [2.5] * failures

    def test_gives_up_after_max_attempts(self):
        """Test the bound stops polling without a trailing sleep."""
        probe = SequenceProbe([False] * 3)
        sleep = SleepRecorder()

        result = wait_until_ready(probe, interval=1, max_attempts=3, sleep=sleep)

        assert not result.ready
        assert result.attempts == 3
        assert len(sleep.intervals) == 2
        assert result.last_error == "not ready"

    def test_exception_means_not_ready(self):
        """Test a raising probe is retried and its error kept."""
        probe = SequenceProbe([ConnectionRefusedError("connection refused"), True])

        result = wait_until_ready(probe, interval=0, max_attempts=5, sleep=SleepRecorder())

        assert result.ready
        assert result.attempts == 2
        assert result.last_error == "connection refused"

    def test_on_attempt_reports_progress(self):
        """Test the callback sees each failed attempt."""
        seen = []
        probe = SequenceProbe([False, RuntimeError("boom"), True])

        wait_until_ready(
            probe,
            interval=0,
            max_attempts=5,
            on_attempt=lambda *args: seen.append(args),
            sleep=SleepRecorder(),
        )

        assert seen == [(1, 5, "not ready"), (2, 5, "boom")]


class TestReadinessPoller:
    """Tests for ReadinessPoller."""

    def test_wait_returns_result(self):
        poller = ReadinessPoller(interval_seconds=0, max_attempts=2, sleep=SleepRecorder())

        result = poller.wait("vault", SequenceProbe([False, True]))

        assert isinstance(result, ReadinessResult)
        assert result.attempts == 2

    def test_timeout_raises(self):
        """Test exhaustion raises ReadinessTimeout naming the target."""
        poller = ReadinessPoller(interval_seconds=0, max_attempts=2, sleep=SleepRecorder())

        with pytest.raises(ReadinessTimeout) as exc_info:
            poller.wait("oracle", SequenceProbe([False, OSError("ORA-12514")]))

        assert exc_info.value.target == "oracle"
        assert exc_info.value.attempts == 2
        assert exc_info.value.last_error == "ORA-12514"
        assert "oracle did not become ready after 2 attempts" in str(exc_info.value)

    def test_zero_attempts_waits_forever(self):
        """Test max_attempts=0 removes the bound."""
        poller = ReadinessPoller(interval_seconds=0, max_attempts=0, sleep=SleepRecorder())
        assert poller.max_attempts is None

        result = poller.wait("vault", SequenceProbe([False] * 200 + [True]))

        assert result.attempts == 201
