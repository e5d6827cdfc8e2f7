"""
Session Store for Crucible.

Persistence for what a session produces:
- contributions (one per worker per cycle)
- trajectory points
- cost entries
- archive entries (cemetery / graduated)
- claim transitions (meaningful claim changes between cycles)
- the session row (status + latest snapshot)

Everything except the session row is append-only. Two backends:
- InMemoryStore: lost on exit, used by tests and ad-hoc runs
- JsonlStore: human-readable JSONL files per session on disk

Backends raise PersistenceFailure. Callers inside a cycle wrap writes
with ``safe_write`` so one lost record never stops a session.
"""

import json
import logging
import re
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from ..blackboard.records import TrajectoryPoint
from ..costs.governor import CostEntry

logger = logging.getLogger(__name__)


class PersistenceFailure(Exception):
    """Raised when a store cannot complete a read or write."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class SessionStore(ABC):
    """
    Abstract backend for session persistence.
    """

    @abstractmethod
    def write_contribution(self, session_id: str, record: Dict[str, Any]) -> None:
        """Append one worker contribution."""
        pass

    @abstractmethod
    def write_trajectory_point(self, session_id: str, point: TrajectoryPoint) -> None:
        """Append one trajectory point."""
        pass

    @abstractmethod
    def write_cost_entry(self, entry: CostEntry) -> None:
        """Append one cost entry."""
        pass

    @abstractmethod
    def write_archive_entry(self, session_id: str, kind: str, entry: Dict[str, Any]) -> None:
        """Append a cemetery or graduated record."""
        pass

    @abstractmethod
    def write_claim_transition(self, session_id: str, record: Dict[str, Any]) -> None:
        """Append one recorded claim change."""
        pass

    @abstractmethod
    def save_session_row(self, session_id: str, row: Dict[str, Any]) -> None:
        """Write (replace) the session row."""
        pass

    @abstractmethod
    def load_session_row(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Read the session row, None if unknown."""
        pass

    @abstractmethod
    def read_trajectory(self, session_id: str) -> List[TrajectoryPoint]:
        """Trajectory points in insertion order."""
        pass

    @abstractmethod
    def read_contributions(self, session_id: str) -> List[Dict[str, Any]]:
        """Contributions in insertion order."""
        pass

    @abstractmethod
    def read_cost_entries(self, session_id: str) -> List[Dict[str, Any]]:
        """Cost entries in insertion order."""
        pass

    @abstractmethod
    def read_claim_transitions(self, session_id: str) -> List[Dict[str, Any]]:
        """Claim changes in insertion order."""
        pass

    @abstractmethod
    def list_session_ids(self) -> List[str]:
        """All sessions with a saved row."""
        pass


class InMemoryStore(SessionStore):
    """
    In-memory session storage.

    State is lost when the process exits.
    """

    def __init__(self):
        self._contributions: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._trajectory: Dict[str, List[TrajectoryPoint]] = defaultdict(list)
        self._costs: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._archive: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._transitions: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._rows: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()

    def write_contribution(self, session_id: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._contributions[session_id].append(dict(record))

    def write_trajectory_point(self, session_id: str, point: TrajectoryPoint) -> None:
        with self._lock:
            self._trajectory[session_id].append(point)

    def write_cost_entry(self, entry: CostEntry) -> None:
        with self._lock:
            self._costs[entry.session_id].append(entry.to_dict())

    def write_archive_entry(self, session_id: str, kind: str, entry: Dict[str, Any]) -> None:
        with self._lock:
            self._archive[session_id].append({"kind": kind, **entry})

    def write_claim_transition(self, session_id: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._transitions[session_id].append(dict(record))

    def save_session_row(self, session_id: str, row: Dict[str, Any]) -> None:
        with self._lock:
            self._rows[session_id] = dict(row)

    def load_session_row(self, session_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._rows.get(session_id)
            return dict(row) if row is not None else None

    def read_trajectory(self, session_id: str) -> List[TrajectoryPoint]:
        with self._lock:
            return list(self._trajectory.get(session_id, []))

    def read_contributions(self, session_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._contributions.get(session_id, [])]

    def read_cost_entries(self, session_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._costs.get(session_id, [])]

    def read_archive(self, session_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._archive.get(session_id, [])]

    def read_claim_transitions(self, session_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._transitions.get(session_id, [])]

    def list_session_ids(self) -> List[str]:
        with self._lock:
            return list(self._rows.keys())


_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


class JsonlStore(SessionStore):
    """
    Disk-persisted session storage.

    Layout::

        <base_dir>/<session_id>/contributions.jsonl
        <base_dir>/<session_id>/trajectory.jsonl
        <base_dir>/<session_id>/costs.jsonl
        <base_dir>/<session_id>/archive.jsonl
        <base_dir>/<session_id>/transitions.jsonl
        <base_dir>/<session_id>/session.json
    """

    def __init__(self, base_dir: Union[str, Path] = "kb/sessions"):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _session_dir(self, session_id: str) -> Path:
        if not _SAFE_ID.match(session_id or ""):
            raise PersistenceFailure(f"Unsafe session id: {session_id!r}")
        path = self.base_dir / session_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _append(self, session_id: str, filename: str, record: Dict[str, Any]) -> None:
        try:
            line = json.dumps(record, ensure_ascii=False, default=str)
            with self._lock:
                with open(self._session_dir(session_id) / filename, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except PersistenceFailure:
            raise
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceFailure(f"Failed to append to {filename} for {session_id}: {e}", cause=e)

    def _read(self, session_id: str, filename: str) -> List[Dict[str, Any]]:
        path = self.base_dir / session_id / filename
        if not path.exists():
            return []

        records = []
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        records.append(json.loads(line))
                    except json.JSONDecodeError as e:
                        logger.warning(f"[STORE] Skipping corrupt line in {path}: {e}")
        except OSError as e:
            raise PersistenceFailure(f"Failed to read {path}: {e}", cause=e)
        return records

    def write_contribution(self, session_id: str, record: Dict[str, Any]) -> None:
        self._append(session_id, "contributions.jsonl", record)

    def write_trajectory_point(self, session_id: str, point: TrajectoryPoint) -> None:
        self._append(session_id, "trajectory.jsonl", point.to_dict())

    def write_cost_entry(self, entry: CostEntry) -> None:
        self._append(entry.session_id, "costs.jsonl", entry.to_dict())

    def write_archive_entry(self, session_id: str, kind: str, entry: Dict[str, Any]) -> None:
        self._append(session_id, "archive.jsonl", {"kind": kind, **entry})

    def write_claim_transition(self, session_id: str, record: Dict[str, Any]) -> None:
        self._append(session_id, "transitions.jsonl", record)

    def save_session_row(self, session_id: str, row: Dict[str, Any]) -> None:
        try:
            with self._lock:
                path = self._session_dir(session_id) / "session.json"
                tmp_path = path.with_suffix(".json.tmp")
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(row, f, indent=2, default=str)
                tmp_path.replace(path)
        except PersistenceFailure:
            raise
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceFailure(f"Failed to save session row {session_id}: {e}", cause=e)

    def load_session_row(self, session_id: str) -> Optional[Dict[str, Any]]:
        path = self.base_dir / session_id / "session.json"
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceFailure(f"Failed to load session row {session_id}: {e}", cause=e)

    def read_trajectory(self, session_id: str) -> List[TrajectoryPoint]:
        return [TrajectoryPoint.from_dict(r) for r in self._read(session_id, "trajectory.jsonl")]

    def read_contributions(self, session_id: str) -> List[Dict[str, Any]]:
        return self._read(session_id, "contributions.jsonl")

    def read_cost_entries(self, session_id: str) -> List[Dict[str, Any]]:
        return self._read(session_id, "costs.jsonl")

    def read_archive(self, session_id: str) -> List[Dict[str, Any]]:
        return self._read(session_id, "archive.jsonl")

    def read_claim_transitions(self, session_id: str) -> List[Dict[str, Any]]:
        return self._read(session_id, "transitions.jsonl")

    def list_session_ids(self) -> List[str]:
        return sorted(p.parent.name for p in self.base_dir.glob("*/session.json"))


def safe_write(description: str, write: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
    """
    Run a store write, logging instead of raising on failure.

    Returns:
        True if the write succeeded
    """
    try:
        write(*args, **kwargs)
        return True
    except PersistenceFailure as e:
        logger.warning(f"[STORE] Failed to write {description}: {e}")
    except Exception as e:
        logger.warning(f"[STORE] Unexpected error writing {description}: {e}")
    return False
