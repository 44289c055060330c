import asyncio

import pytest

from core.cancel import CancellationToken
from core.errors import OperationCancelled
from core.infra.scheduler import RateLimiter, TaskScheduler
from core.models import ErrorCode, PipelineError, TaskState
from core.schema import NormalizedRecord
from core.tasks import ProfileTask, TaskResult


def _task(provider, target, run):
    return ProfileTask(provider=provider, display_name=provider.upper(), target=target, run=run)


def _ok(provider, target, started=None):
    async def run(token):
        if started is not None:
            started.append(target)
        return TaskResult(record=NormalizedRecord(provider=provider, provider_id=target))

    return _task(provider, target, run)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestTaskScheduler:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_cancel_siblings(self):
        async def boom(token):
            raise RuntimeError("normalizer exploded")

        tasks = [_ok("1001dj", "a"), _task("1001dj", "b", boom), _ok("livetonight", "c")]
        result = await TaskScheduler(concurrency=2).run(tasks)

        assert sorted(r.record.provider_id for r in result.results) == ["a", "c"]
        assert len(result.errors) == 1
        assert result.errors[0].code is ErrorCode.NORMALIZE_FAILED
        assert result.errors[0].target == "b"

    @pytest.mark.asyncio
    async def test_attached_errors_are_collected(self):
        error = PipelineError.build(
            ErrorCode.PROFILE_FETCH_FAILED, provider="1001dj", target="x", message="HTTP 404"
        )

        async def degraded(token):
            return TaskResult(record=NormalizedRecord(provider="1001dj", provider_id="x"), error=error)

        result = await TaskScheduler().run([_task("1001dj", "x", degraded)])
        assert len(result.results) == 1
        assert result.errors == [error]

    @pytest.mark.asyncio
    async def test_concurrency_bound(self):
        running = 0
        peak = 0

        async def run(token):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return TaskResult(record=NormalizedRecord(provider="p"))

        tasks = [_task("p", str(i), run) for i in range(10)]
        await TaskScheduler(concurrency=3).run(tasks)
        assert peak <= 3

    @pytest.mark.asyncio
    async def test_progress_events(self):
        events = []
        await TaskScheduler(concurrency=2, on_progress=events.append).run(
            [_ok("p", "a"), _ok("p", "b")]
        )
        done = [e for e in events if e.state is TaskState.DONE]
        assert len(done) == 2
        assert max(e.completed for e in done) == 2
        assert all(e.total == 2 and e.worker_id in (1, 2) for e in events)

    @pytest.mark.asyncio
    async def test_cancelled_token_prevents_any_fetch(self):
        token = CancellationToken()
        token.cancel()
        started = []
        with pytest.raises(OperationCancelled):
            await TaskScheduler().run([_ok("p", "a", started), _ok("p", "b", started)], token)
        assert started == []

    @pytest.mark.asyncio
    async def test_cancel_mid_run_stops_promptly(self):
        token = CancellationToken()
        started = []

        async def slow(token):
            started.append(1)
            await token.sleep(30)
            return TaskResult(record=NormalizedRecord(provider="p"))

        tasks = [_task("p", str(i), slow) for i in range(8)]
        run = asyncio.create_task(TaskScheduler(concurrency=2).run(tasks, token))
        await asyncio.sleep(0.05)
        token.cancel("user abort")

        with pytest.raises(OperationCancelled):
            await asyncio.wait_for(run, timeout=2)
        assert len(started) == 2


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_no_wait_once_interval_elapsed(self):
        clock = FakeClock()
        limiter = RateLimiter({"p": 5.0}, clock=clock)
        await asyncio.wait_for(limiter.wait("p"), timeout=0.5)
        clock.now = 6.0
        await asyncio.wait_for(limiter.wait("p"), timeout=0.5)

    @pytest.mark.asyncio
    async def test_min_interval_between_dispatches(self):
        limiter = RateLimiter({"slow": 0.05})
        loop = asyncio.get_running_loop()
        stamps = []
        for _ in range(3):
            await limiter.wait("slow")
            stamps.append(loop.time())
        gaps = [b - a for a, b in zip(stamps, stamps[1:])]
        assert all(gap >= 0.04 for gap in gaps)

    @pytest.mark.asyncio
    async def test_concurrent_dispatches_never_under_wait(self):
        loop = asyncio.get_running_loop()
        stamps = []

        async def run(token):
            stamps.append(loop.time())
            return TaskResult(record=NormalizedRecord(provider="p"))

        scheduler = TaskScheduler(concurrency=5, rate_limiter=RateLimiter({"p": 0.05}))
        await scheduler.run([_task("p", str(i), run) for i in range(5)])

        stamps.sort()
        gaps = [b - a for a, b in zip(stamps, stamps[1:])]
        assert len(gaps) == 4
        assert all(gap >= 0.045 for gap in gaps)

    @pytest.mark.asyncio
    async def test_providers_are_independent(self):
        limiter = RateLimiter({"slow": 10.0})
        await limiter.wait("slow")
        await asyncio.wait_for(limiter.wait("fast"), timeout=0.5)
        await asyncio.wait_for(limiter.wait("fast"), timeout=0.5)

    @pytest.mark.asyncio
    async def test_wait_is_cancellable(self):
        token = CancellationToken()
        limiter = RateLimiter({"slow": 30.0})
        await limiter.wait("slow", token)
        pending = asyncio.create_task(limiter.wait("slow", token))
        await asyncio.sleep(0.02)
        token.cancel()
        with pytest.raises(OperationCancelled):
            await asyncio.wait_for(pending, timeout=1)
