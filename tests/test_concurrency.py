import asyncio

import pytest

from core.config.settings import ConcurrencyConfig
from core.exceptions import SessionBusy
from core.services.concurrency import ConcurrencyController, RateLimiter
from core.services.registry import SessionRegistry, TenantSession


def make_controller(**overrides):
    options = dict(max_concurrent_operations=5, session_lock_timeout=1, massive_rate_limit=10, massive_rate_period=1)
    options.update(overrides)
    return ConcurrencyController(ConcurrencyConfig(**options))


# ------------------------------ REGISTRY ------------------------------

def test_registry_tracks_live_sessions():
    registry = SessionRegistry()
    session = TenantSession(id="s1", credential_key="k1")

    registry.put(session)

    assert "k1" in registry
    assert len(registry) == 1
    assert registry.get("k1") is session
    assert registry.list_live() == [session]
    assert registry.remove("k1") is session
    assert registry.get("k1") is None
    assert registry.remove("k1") is None


def test_session_liveness_and_touch():
    session = TenantSession(id="s1", credential_key="k1", username="user@x.com")
    first_use = session.last_used_at

    assert session.is_live is False
    session.context, session.page = object(), object()
    assert session.is_live is True

    session.touch()
    assert session.last_used_at >= first_use


# ------------------------------ SESSION LOCKS ------------------------------

@pytest.mark.asyncio
async def test_same_session_operations_are_serialized():
    controller = make_controller()
    events = []

    async def operation(name):
        async with controller.session_slot("k1", name):
            events.append(f"start-{name}")
            await asyncio.sleep(0.02)
            events.append(f"end-{name}")

    await asyncio.gather(operation("a"), operation("b"))

    assert events in (
        ["start-a", "end-a", "start-b", "end-b"],
        ["start-b", "end-b", "start-a", "end-a"],
    )


@pytest.mark.asyncio
async def test_different_sessions_run_in_parallel():
    controller = make_controller()
    running = 0
    peak = 0

    async def operation(key):
        nonlocal running, peak
        async with controller.session_slot(key):
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.02)
            running -= 1

    await asyncio.gather(operation("k1"), operation("k2"), operation("k3"))

    assert peak == 3


@pytest.mark.asyncio
async def test_global_ceiling_bounds_parallelism():
    controller = make_controller(max_concurrent_operations=2)
    running = 0
    peak = 0

    async def operation(key):
        nonlocal running, peak
        async with controller.session_slot(key):
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.02)
            running -= 1

    await asyncio.gather(*(operation(f"k{i}") for i in range(5)))

    assert peak == 2


@pytest.mark.asyncio
async def test_lock_timeout_raises_session_busy():
    controller = make_controller()

    async with controller.session_slot("k1"):
        assert controller.is_busy("k1")
        with pytest.raises(SessionBusy):
            async with controller.session_slot("k1", "login", timeout=0.01):
                pass

    assert not controller.is_busy("k1")


@pytest.mark.asyncio
async def test_lock_released_when_operation_fails():
    controller = make_controller()

    with pytest.raises(RuntimeError):
        async with controller.session_slot("k1"):
            raise RuntimeError("driver crashed")

    async with controller.session_slot("k1", timeout=0.01):
        pass


@pytest.mark.asyncio
async def test_forget_keeps_held_locks():
    controller = make_controller()

    async with controller.session_slot("k1"):
        controller.forget("k1")
        assert controller.is_busy("k1")

    controller.forget("k1")
    assert not controller.is_busy("k1")


@pytest.mark.asyncio
async def test_drain_waits_for_running_operations():
    controller = make_controller()
    finished = []
    entered = asyncio.Event()

    async def operation():
        async with controller.session_slot("k1"):
            entered.set()
            await asyncio.sleep(0.02)
            finished.append("k1")

    task = asyncio.create_task(operation())
    await entered.wait()

    busy = await controller.drain(["k1", "never-used"], timeout=1)

    assert busy == []
    assert finished == ["k1"]
    await task


@pytest.mark.asyncio
async def test_drain_reports_sessions_still_busy():
    controller = make_controller()
    release, entered = asyncio.Event(), asyncio.Event()

    async def operation():
        async with controller.session_slot("k1"):
            entered.set()
            await release.wait()

    task = asyncio.create_task(operation())
    await entered.wait()

    assert await controller.drain(["k1"], timeout=0.01) == ["k1"]

    release.set()
    await task
    assert not controller.is_busy("k1")


# ------------------------------ RATE LIMITER ------------------------------

def test_rate_limiter_rejects_bad_configuration():
    with pytest.raises(ValueError):
        RateLimiter(0, 1)
    with pytest.raises(ValueError):
        RateLimiter(1, 0)


@pytest.mark.asyncio
async def test_rate_limiter_allows_burst_then_waits():
    limiter = RateLimiter(max_calls=3, period=0.3)

    waits = [await limiter.acquire() for _ in range(3)]
    assert waits == [0.0, 0.0, 0.0]

    loop = asyncio.get_running_loop()
    started = loop.time()
    waited = await limiter.acquire()

    assert waited > 0
    assert loop.time() - started >= 0.05


@pytest.mark.asyncio
async def test_massive_slot_is_rate_limited():
    controller = make_controller(massive_rate_limit=1, massive_rate_period=0.2)
    loop = asyncio.get_running_loop()

    async with controller.massive_slot("k1"):
        pass

    started = loop.time()
    async with controller.massive_slot("k2"):
        pass

    assert loop.time() - started >= 0.1
