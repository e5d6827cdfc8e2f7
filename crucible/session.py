"""
Session Manager for Crucible.

Starts runners as asyncio tasks and keeps track of them so the API and
CLI can list, inspect and stop sessions.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .config import CrucibleConfig
from .cycle.runner import CycleRunner, RunnerStatus, SessionSummary, StopReason
from .embedding.space import EmbeddingSpace
from .frontier.pool import FrontierIdea
from .llm.client import GenerationClient
from .notifications.bus import NotificationBus
from .persistence.store import InMemoryStore, JsonlStore, SessionStore

logger = logging.getLogger(__name__)

ClientFactory = Callable[[CrucibleConfig], Any]


@dataclass
class SessionInfo:
    """A session known to the manager."""

    session_id: str
    runner: CycleRunner
    task: Optional[asyncio.Task] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    summary: Optional[SessionSummary] = None
    error: Optional[str] = None

    @property
    def status(self) -> RunnerStatus:
        return self.runner.status

    def to_dict(self) -> Dict[str, Any]:
        snapshot = self.runner.blackboard.snapshot()
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "stop_reason": self.runner.stop_reason.value if self.runner.stop_reason else None,
            "created_at": self.created_at,
            "cycles_run": self.runner.cycle_number,
            "claim": snapshot.claim,
            "support": snapshot.support,
            "cemetery_size": len(snapshot.cemetery),
            "graduated_size": len(snapshot.graduated),
            "frontier_size": len(snapshot.frontier),
            "cost_total_usd": self.runner.cost_governor.total_usd,
            "error": self.error,
        }


def default_client_factory(config: CrucibleConfig) -> GenerationClient:
    return GenerationClient.from_config(config)


def default_embedder_factory(config: CrucibleConfig) -> EmbeddingSpace:
    return EmbeddingSpace(model=config.embedding_model, base_url=config.ollama_base_url)


def default_store(config: CrucibleConfig) -> SessionStore:
    if config.store_dir:
        return JsonlStore(config.store_dir)
    return InMemoryStore()


class SessionManager:
    """
    Registry of running and finished sessions.

    Args:
        bus: Shared notification bus (events carry the session id)
        store: Shared persistence backend (derived from config if omitted)
        client_factory: Builds a generation client for a session config
        embedder_factory: Builds an embedder for a session config
    """

    def __init__(
        self,
        bus: Optional[NotificationBus] = None,
        store: Optional[SessionStore] = None,
        client_factory: Optional[ClientFactory] = None,
        embedder_factory: Optional[Callable[[CrucibleConfig], Any]] = None,
    ):
        self.bus = bus or NotificationBus()
        self.store = store
        self.client_factory = client_factory or default_client_factory
        self.embedder_factory = embedder_factory or default_embedder_factory
        self._sessions: Dict[str, SessionInfo] = {}
        self._lock = threading.Lock()

    def create(self, config: CrucibleConfig, seed_claim: Optional[str] = None) -> SessionInfo:
        """Build a runner without starting it."""
        runner = CycleRunner(
            config=config,
            client=self.client_factory(config),
            embedder=self.embedder_factory(config),
            store=self.store if self.store is not None else default_store(config),
            bus=self.bus,
            seed_claim=seed_claim,
        )
        info = SessionInfo(session_id=runner.session_id, runner=runner)
        with self._lock:
            self._sessions[info.session_id] = info
        return info

    async def start(self, config: CrucibleConfig, seed_claim: Optional[str] = None) -> SessionInfo:
        """
        Create a session and run it in the background.

        Must be called from a running event loop.
        """
        info = self.create(config, seed_claim)
        info.task = asyncio.create_task(self._run(info), name=f"crucible-{info.session_id}")
        logger.info(f"[SESSION] Started {info.session_id}")
        return info

    async def _run(self, info: SessionInfo) -> Optional[SessionSummary]:
        try:
            info.summary = await info.runner.run()
            return info.summary
        except Exception as e:
            info.error = str(e)
            logger.error(f"[SESSION] {info.session_id} failed: {e}")
            return None

    def get(self, session_id: str) -> Optional[SessionInfo]:
        with self._lock:
            return self._sessions.get(session_id)

    def list_sessions(self) -> List[SessionInfo]:
        with self._lock:
            return sorted(self._sessions.values(), key=lambda s: s.created_at)

    def stop(self, session_id: str) -> bool:
        """
        Ask a session to stop after its current cycle.

        Returns:
            False if the session is unknown or already finished
        """
        info = self.get(session_id)
        if info is None or info.status not in (RunnerStatus.PENDING, RunnerStatus.RUNNING):
            return False
        info.runner.request_stop(StopReason.REQUESTED)
        return True

    def add_frontier_idea(self, session_id: str, text: str, sponsor_id: str) -> FrontierIdea:
        """
        Sponsor a frontier idea in a session.

        Raises:
            KeyError: If the session is unknown
            ValueError: If the idea text or sponsor is blank
        """
        info = self.get(session_id)
        if info is None:
            raise KeyError(session_id)
        return info.runner.frontier_pool.add_idea(text, sponsor_id)

    async def wait(self, session_id: str) -> Optional[SessionSummary]:
        info = self.get(session_id)
        if info is None or info.task is None:
            return None
        return await info.task

    async def shutdown(self) -> None:
        """Stop every running session and wait for them to finish."""
        tasks = []
        for info in self.list_sessions():
            if info.task is not None and not info.task.done():
                info.runner.request_stop(StopReason.REQUESTED)
                tasks.append(info.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
