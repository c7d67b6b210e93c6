"""Tests for lock acquisition, release and TTL assertion."""

import threading
import time

import pytest

from sharedlocks import (
    AcquireError,
    LockHandle,
    LockTimeoutError,
    ReleaseError,
    RemainingTTLError,
    SharedLockConfig,
    SharedLockError,
    connect,
)
from sharedlocks.gateway_sqlite import SqliteGateway


def _acquire_in_thread(coordinator, name, timeout, ttl):
    """Run ``lock`` in a thread; returns (thread, outcome dict)."""
    outcome = {}

    def run():
        start = time.monotonic()
        try:
            outcome["handle"] = coordinator.lock(name, timeout, ttl)
        except Exception as e:
            outcome["error"] = e
        outcome["elapsed"] = time.monotonic() - start

    thread = threading.Thread(target=run)
    thread.start()
    return thread, outcome


class TestLock:
    def test_uncontended_lock(self, coordinator):
        handle = coordinator.lock("job", 0, 10)
        assert isinstance(handle, LockHandle)
        assert handle.name == "job"

        (record,) = coordinator.list_locks()
        assert record.name == "job"
        assert record.confirmed
        assert record.connection_id == coordinator.gateway.session_id

    def test_relock_after_unlock(self, make_coordinator):
        a, b = make_coordinator(), make_coordinator()
        a.lock("job", 0, 10).release()
        b.lock("job", 0, 10).release()
        assert a.list_locks() == []

    def test_independent_names(self, make_coordinator):
        a, b = make_coordinator(), make_coordinator()
        a.lock("one", 0, 10)
        b.lock("two", 0, 10)
        assert [r.name for r in a.list_locks()] == ["one", "two"]

    def test_timeout_while_held(self, make_coordinator):
        a, b = make_coordinator(), make_coordinator()
        a.lock("job", 0, 10)

        start = time.monotonic()
        with pytest.raises(LockTimeoutError) as excinfo:
            b.lock("job", 0.3, 10)
        elapsed = time.monotonic() - start

        assert elapsed >= 0.3
        assert elapsed < 3
        assert excinfo.value.name == "job"
        assert excinfo.value.timeout == 0.3
        assert isinstance(excinfo.value, AcquireError)

    def test_zero_timeout_fails_fast(self, make_coordinator):
        a, b = make_coordinator(), make_coordinator()
        a.lock("job", 0, 10)
        start = time.monotonic()
        with pytest.raises(LockTimeoutError):
            b.lock("job", 0, 10)
        assert time.monotonic() - start < 1

    def test_waiter_acquires_after_release(self, make_coordinator):
        a, b = make_coordinator(), make_coordinator()
        a.lock("job", 0, 10)

        thread, outcome = _acquire_in_thread(b, "job", 5, 10)
        time.sleep(0.3)
        a.unlock("job")
        thread.join(10)

        assert "error" not in outcome
        assert outcome["elapsed"] >= 0.3
        assert outcome["elapsed"] < 3
        (record,) = a.list_locks()
        assert record.connection_id == b.gateway.session_id

    def test_dead_confirmed_holder_is_evicted_at_once(self, make_coordinator):
        a, b = make_coordinator(), make_coordinator()
        a.lock("job", 0, 300)
        a.close()

        start = time.monotonic()
        b.lock("job", 0, 10)
        assert time.monotonic() - start < 1

    def test_dead_holder_with_waiter(self, make_coordinator):
        a, b = make_coordinator(), make_coordinator()
        a.lock("job", 0, 300)

        thread, outcome = _acquire_in_thread(b, "job", 5, 10)
        time.sleep(0.2)
        a.close()
        thread.join(10)

        assert "error" not in outcome
        assert outcome["elapsed"] < 3

    def test_unconfirmed_claim_waits_for_ttl(self, make_coordinator, clock):
        a, b = make_coordinator(clock), make_coordinator(clock)
        # Insert only; the holder died before taking the native lock.
        a.registry.register("job", 10)
        a.close()

        with pytest.raises(LockTimeoutError):
            b.lock("job", 0.2, 10)

        threading.Timer(0.3, clock.advance, args=(11,)).start()
        start = time.monotonic()
        b.lock("job", 5, 10)
        elapsed = time.monotonic() - start

        assert 0.2 <= elapsed < 3
        (record,) = b.list_locks()
        assert record.connection_id == b.gateway.session_id
        assert record.confirmed

    def test_orphaned_native_holder_is_terminated(self, make_coordinator, make_gateway):
        orphan = make_gateway()
        orphan.acquire_native("job", 0)
        coordinator = make_coordinator()

        coordinator.lock("job", 0, 10)

        assert orphan.terminated
        (record,) = coordinator.list_locks()
        assert record.confirmed

    def test_native_holder_that_survives_kill(self, make_coordinator, make_gateway, monkeypatch):
        orphan = make_gateway()
        orphan.acquire_native("job", 0)
        coordinator = make_coordinator()
        monkeypatch.setattr(coordinator.gateway, "terminate_session", lambda session_id: None)

        with pytest.raises(AcquireError, match="does not terminate") as excinfo:
            coordinator.lock("job", 0, 10)

        assert not isinstance(excinfo.value, LockTimeoutError)
        assert coordinator.list_locks() == []

    def test_failed_confirmation_rolls_back_claim(self, coordinator, monkeypatch):
        monkeypatch.setattr(coordinator.registry, "mark_acquired", lambda name: False)
        with pytest.raises(AcquireError, match="mark claim"):
            coordinator.lock("job", 0, 10)
        assert coordinator.list_locks() == []
        assert coordinator.gateway.native_holder("job") is None

    def test_failed_confirmation_keeps_session_alive(self, make_coordinator, monkeypatch):
        a, b = make_coordinator(), make_coordinator()
        a.lock("other", 0, 10)
        with monkeypatch.context() as m:
            m.setattr(a.registry, "mark_acquired", lambda name: False)
            with pytest.raises(AcquireError):
                a.lock("job", 0, 10)

        b.lock("job", 0, 10)

        assert not a.gateway.terminated
        a.assert_ttl("other", 1)

    def test_unknown_native_holder_gives_up_after_attempts(
        self, make_coordinator, make_gateway, fast_config, monkeypatch
    ):
        orphan = make_gateway()
        orphan.acquire_native("job", 0)
        coordinator = make_coordinator()
        native_attempts = []
        acquire_native = coordinator.gateway.acquire_native

        def counting_acquire(name, timeout):
            native_attempts.append(name)
            return acquire_native(name, timeout)

        monkeypatch.setattr(coordinator.gateway, "acquire_native", counting_acquire)
        monkeypatch.setattr(coordinator.gateway, "native_holder", lambda name: None)

        with pytest.raises(AcquireError, match="does not terminate") as excinfo:
            coordinator.lock("job", 0, 10)

        assert not isinstance(excinfo.value, LockTimeoutError)
        assert len(native_attempts) == fast_config.kill_attempts
        assert not orphan.terminated
        assert coordinator.list_locks() == []

    def test_store_error_is_wrapped(self, coordinator):
        coordinator.gateway.close()
        with pytest.raises(AcquireError) as excinfo:
            coordinator.lock("job", 0, 10)
        assert excinfo.value.__cause__ is not None

    def test_mutual_exclusion(self, make_coordinator):
        coordinators = [make_coordinator() for _ in range(4)]
        state = {"active": 0, "max_active": 0, "acquired": 0}
        guard = threading.Lock()
        errors = []

        def worker(coordinator):
            # A session killed as a suspected orphan stops its worker early.
            for _ in range(3):
                try:
                    handle = coordinator.lock("job", 10, 30)
                except SharedLockError as e:
                    errors.append(e)
                    return
                with guard:
                    state["active"] += 1
                    state["acquired"] += 1
                    state["max_active"] = max(state["max_active"], state["active"])
                time.sleep(0.01)
                with guard:
                    state["active"] -= 1
                try:
                    handle.release()
                except SharedLockError as e:
                    errors.append(e)
                    return

        threads = [threading.Thread(target=worker, args=(c,)) for c in coordinators]
        for t in threads:
            t.start()
        for t in threads:
            t.join(60)

        assert state["max_active"] == 1
        assert state["acquired"] >= 1
        assert not [e for e in errors if isinstance(e, LockTimeoutError)]


class TestUnlock:
    def test_unlock_releases_native_lock(self, coordinator):
        coordinator.lock("job", 0, 10)
        coordinator.unlock("job")
        assert coordinator.gateway.native_holder("job") is None
        assert coordinator.list_locks() == []

    def test_unlock_drains_reentrant_native_lock(self, coordinator):
        coordinator.lock("job", 0, 10)
        coordinator.gateway.acquire_native("job", 0)
        coordinator.unlock("job")
        assert coordinator.gateway.native_holder("job") is None

    def test_unlock_twice(self, coordinator):
        coordinator.lock("job", 0, 10)
        coordinator.unlock("job")
        with pytest.raises(ReleaseError) as excinfo:
            coordinator.unlock("job")
        assert excinfo.value.name == "job"

    def test_unlock_never_locked(self, coordinator):
        with pytest.raises(ReleaseError):
            coordinator.unlock("job")

    def test_unlock_after_eviction(self, make_coordinator):
        a, b = make_coordinator(), make_coordinator()
        a.lock("job", 0, 10)
        b.gateway.execute('DELETE FROM "shared_locks"')

        with pytest.raises(ReleaseError):
            a.unlock("job")
        # The native lock is still released.
        assert b.gateway.native_holder("job") is None

    def test_unlock_other_sessions_lock(self, make_coordinator):
        a, b = make_coordinator(), make_coordinator()
        a.lock("job", 0, 10)
        with pytest.raises(ReleaseError):
            b.unlock("job")
        assert [r.name for r in a.list_locks()] == ["job"]


class TestAssertTTL:
    def test_enough_ttl(self, make_coordinator, clock):
        coordinator = make_coordinator(clock)
        handle = coordinator.lock("job", 0, 10)
        coordinator.assert_ttl("job", 5)
        handle.assert_ttl()

    def test_not_enough_ttl(self, make_coordinator, clock):
        coordinator = make_coordinator(clock)
        handle = coordinator.lock("job", 0, 10)
        with pytest.raises(RemainingTTLError) as excinfo:
            handle.assert_ttl(20)
        assert excinfo.value.min_remaining == 20

    def test_ttl_runs_down(self, make_coordinator, clock):
        coordinator = make_coordinator(clock)
        coordinator.lock("job", 0, 10)
        clock.advance(8)
        with pytest.raises(RemainingTTLError):
            coordinator.assert_ttl("job", 5)

    def test_not_owner(self, make_coordinator):
        a, b = make_coordinator(), make_coordinator()
        a.lock("job", 0, 10)
        with pytest.raises(RemainingTTLError):
            b.assert_ttl("job")

    def test_after_release(self, coordinator):
        coordinator.lock("job", 0, 10).release()
        with pytest.raises(RemainingTTLError):
            coordinator.assert_ttl("job")


class TestContextManagers:
    def test_handle_context_manager(self, coordinator):
        with coordinator.lock("job", 0, 10) as handle:
            assert handle.name == "job"
            assert len(coordinator.list_locks()) == 1
        assert coordinator.list_locks() == []

    def test_locked(self, make_coordinator):
        a, b = make_coordinator(), make_coordinator()
        with a.locked("job", 0, 10):
            with pytest.raises(LockTimeoutError):
                b.lock("job", 0, 10)
        b.lock("job", 0, 10)

    def test_locked_releases_on_error(self, coordinator):
        with pytest.raises(RuntimeError):
            with coordinator.locked("job", 0, 10):
                raise RuntimeError("boom")
        assert coordinator.list_locks() == []


class TestCleanAndRepair:
    def test_clean_dead_holder(self, make_coordinator):
        a, b = make_coordinator(), make_coordinator()
        a.lock("job", 0, 300)
        a.close()
        assert b.clean("job") is True
        assert b.list_locks() == []

    def test_clean_live_holder(self, make_coordinator):
        a, b = make_coordinator(), make_coordinator()
        a.lock("job", 0, 300)
        assert b.clean("job") is False

    def test_repair_healthy_table(self, coordinator):
        coordinator.lock("job", 0, 10)
        coordinator.repair_table()
        assert [r.name for r in coordinator.list_locks()] == ["job"]


class TestConfiguration:
    def test_ansi_quotes_and_custom_table(self, make_coordinator, fast_config):
        cfg = SharedLockConfig(
            table="job locks",
            quote_style="ansi",
            poll_interval_seconds=fast_config.poll_interval_seconds,
            kill_retry_sleep_seconds=fast_config.kill_retry_sleep_seconds,
        )
        a, b = make_coordinator(config=cfg), make_coordinator(config=cfg)
        a.lock("job", 0, 10)
        with pytest.raises(LockTimeoutError):
            b.lock("job", 0, 10)
        a.unlock("job")
        assert a.gateway.execute('SELECT COUNT(*) FROM "job locks"').scalar() == 0

    def test_connect(self, tmp_db, fast_config):
        with connect(f"sqlite:///{tmp_db}", config=fast_config) as coordinator:
            assert isinstance(coordinator.gateway, SqliteGateway)
            coordinator.create_table()
            with coordinator.locked("job", 0, 10):
                pass
