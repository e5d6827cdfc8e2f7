"""
Tests for the SessionManager.
"""

import asyncio

import pytest

from crucible.cycle import RunnerStatus, StopReason
from crucible.notifications import EventRecorder, EventType
from crucible.persistence import InMemoryStore
from crucible.session import SessionManager

from conftest import FakeClient, FakeEmbedder, response_text


def _manager(delays=None) -> SessionManager:
    responses = {"explorer": response_text("explorer"), "critic": response_text("critic")}
    return SessionManager(
        store=InMemoryStore(),
        client_factory=lambda config: FakeClient(responses=responses, delays=delays),
        embedder_factory=lambda config: FakeEmbedder(),
    )


class TestSessionManager:

    async def test_start_and_wait(self, config):
        manager = _manager()
        recorder = EventRecorder()
        manager.bus.subscribe(recorder)

        info = await manager.start(config)
        summary = await manager.wait(info.session_id)

        assert summary.status == RunnerStatus.COMPLETED
        assert summary.cycles_run == 3
        assert manager.get(info.session_id).summary is summary
        assert info.to_dict()["status"] == "completed"
        assert len(recorder.of_type(EventType.SESSION_STOPPED)) == 1
        assert manager.store.load_session_row(info.session_id)["status"] == "completed"

    async def test_seed_claim_argument(self, config):
        manager = _manager()
        info = manager.create(config, seed_claim="Order always costs energy")
        assert info.runner.blackboard.snapshot().claim == "Order always costs energy"
        assert info.status == RunnerStatus.PENDING
        assert await manager.wait(info.session_id) is None

    async def test_list_sessions(self, config):
        manager = _manager()
        first = manager.create(config)
        second = manager.create(config)
        assert [s.session_id for s in manager.list_sessions()] == [first.session_id, second.session_id]

    async def test_stop_running_session(self, config):
        manager = _manager(delays={"explorer": 0.05})
        info = await manager.start(config.with_overrides(max_cycles=100))

        await asyncio.sleep(0.12)
        assert manager.stop(info.session_id) is True
        summary = await manager.wait(info.session_id)

        assert summary.stop_reason == StopReason.REQUESTED
        assert summary.status == RunnerStatus.STOPPED
        assert 1 <= summary.cycles_run < 100
        assert manager.stop(info.session_id) is False

    def test_stop_unknown_session(self):
        assert _manager().stop("missing") is False

    async def test_add_frontier_idea(self, config):
        manager = _manager()
        info = manager.create(config)

        manager.add_frontier_idea(info.session_id, "Cells as entropy pumps", "user")
        idea = manager.add_frontier_idea(info.session_id, "cells as entropy pumps", "critic")

        assert idea.sponsor_count == 2
        assert info.runner.frontier_pool.has_eligible()

    def test_add_frontier_idea_unknown_session(self):
        with pytest.raises(KeyError):
            _manager().add_frontier_idea("missing", "idea", "user")

    def test_client_factory_failure_registers_nothing(self, config):
        def _broken_client(config):
            raise RuntimeError("no client")

        manager = SessionManager(store=InMemoryStore(), client_factory=_broken_client)
        with pytest.raises(RuntimeError):
            manager.create(config)
        assert manager.list_sessions() == []

    async def test_shutdown_stops_everything(self, config):
        manager = _manager(delays={"explorer": 0.05})
        infos = [await manager.start(config.with_overrides(max_cycles=100)) for _ in range(2)]

        await asyncio.sleep(0.08)
        await manager.shutdown()

        for info in infos:
            assert info.task.done()
            assert info.runner.stop_reason == StopReason.REQUESTED
