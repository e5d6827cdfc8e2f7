"""
Pytest fixtures and configuration for the Crucible test suite.
"""

import asyncio
import json
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, Union

import numpy as np
import pytest

# Ensure crucible package is importable
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from crucible.blackboard import Blackboard
from crucible.config import CrucibleConfig, reset_crucible_config
from crucible.llm.client import GenerationResult


VALID_RESPONSES: Dict[str, Dict[str, Any]] = {
    "explorer": {
        "new_claim": "Local entropy decreases require an external energy input",
        "inference_type": "deductive",
        "reasoning": "Follows from the second law applied to open systems",
    },
    "critic": {
        "objection": "The claim ignores systems far from equilibrium",
        "target_premise": "Entropy never decreases locally",
        "clarifying_question": "Does the claim cover dissipative structures?",
    },
    "connector": {
        "analogy": "A refrigerator cooling its interior while heating the room",
        "source_domain": "thermal engineering",
        "mapping_explanation": "Local order is paid for by exporting disorder to the surroundings",
    },
    "steelman": {
        "counter_argument": "Self-organizing systems create order without any designed input",
        "key_assumptions": ["Energy gradients count as inputs"],
        "strongest_point": "Convection cells form spontaneously",
    },
    "operationalizer": {
        "prediction": "Isolating a Benard cell from its heat source stops its pattern",
        "test_conditions": "Remove the heat gradient",
        "expected_observation": "The cells dissolve",
        "surprise_factor": "Persistent cells without a gradient would refute the claim",
    },
    "quantifier": {
        "quantified_claim": "Entropy export exceeds local decrease by at least 1x",
        "bounds": "ratio >= 1",
        "bounds_justification": "Second law bound for a combined system and surroundings",
        "arbitrary_flag": False,
    },
    "reducer": {
        "essential_claim": "Order costs energy",
        "removed_elements": ["local"],
        "preserved_elements": ["energy input"],
    },
    "boundary_hunter": {
        "edge_case": "Quantum systems at absolute zero",
        "why_it_breaks": "No thermal energy to export",
        "consequence": "The claim needs a temperature qualifier",
    },
    "translator": {
        "translated_claim": "Reducing uncertainty in one register costs bits elsewhere",
        "target_framework": "information_theory",
        "revealed_assumption": "Entropy and information are interchangeable here",
    },
    "historian": {
        "is_retread": False,
        "similar_claims": [],
        "cycle_numbers": [],
        "novelty_score": 0.8,
        "analysis": "No earlier claim matches",
    },
    "grave_keeper": {
        "death_risk": 0.3,
        "similar_deaths": {},
        "pattern_detected": "none",
        "survival_suggestion": "Narrow the scope",
    },
    "cartographer": {
        "suggested_direction": "Study entropy production rates instead of totals",
        "target_region": "non-equilibrium thermodynamics",
        "exploration_rationale": "Rates are measurable where totals are not",
    },
    "perturber": {
        "pivot_claim": "Living cells are entropy pumps",
        "connection_to_previous": "Cells are local decreases fed by metabolism",
        "pivot_rationale": "Biology offers the cleanest test cases",
    },
}


def response_text(role: str, **overrides: Any) -> str:
    """JSON text of a valid response for a role."""
    return json.dumps({**VALID_RESPONSES[role], **overrides})


Response = Union[str, Callable[[List[Dict[str, str]]], str]]


class FakeClient:
    """
    Scripted generation client.

    Roles without a scripted response answer "{}" (an invalid response).
    """

    def __init__(
        self,
        responses: Optional[Dict[str, Response]] = None,
        delays: Optional[Dict[str, float]] = None,
        failures: Optional[Dict[str, Exception]] = None,
        cost_usd: float = 0.0,
        model: str = "fake-model",
    ):
        self.responses = dict(responses or {})
        self.delays = dict(delays or {})
        self.failures = dict(failures or {})
        self.cost_usd = cost_usd
        self.model = model
        self.calls: List[str] = []
        self.messages: Dict[str, List[Dict[str, str]]] = {}
        self.completed: List[str] = []

    async def generate(self, role: str, messages: List[Dict[str, str]], model: Optional[str] = None):
        self.calls.append(role)
        self.messages[role] = messages
        delay = self.delays.get(role, 0.0)
        if delay:
            await asyncio.sleep(delay)
        if role in self.failures:
            raise self.failures[role]

        response = self.responses.get(role, "{}")
        text = response(messages) if callable(response) else response
        self.completed.append(role)
        return GenerationResult(
            text=text,
            model=model or self.model,
            input_tokens=10,
            output_tokens=20,
            cost_usd=self.cost_usd,
        )


class FakeEmbedder:
    """Returns queued vectors, then repeats the last one."""

    def __init__(self, vectors: Optional[List[List[float]]] = None):
        self.vectors = [np.asarray(v, dtype=float) for v in (vectors or [[0.0, 0.0, 1.0]])]
        self.texts: List[str] = []

    async def embed(self, text: Optional[str]):
        self.texts.append(text)
        index = min(len(self.texts) - 1, len(self.vectors) - 1)
        return self.vectors[index]


@pytest.fixture(autouse=True)
def _reset_global_config():
    reset_crucible_config()
    yield
    reset_crucible_config()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp(prefix="crucible_test_"))
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def config() -> CrucibleConfig:
    """Deterministic session config: no perturber draws, fixed seed."""
    return CrucibleConfig(
        seed_claim="Entropy never decreases locally",
        max_cycles=3,
        perturb_probability=0.0,
        random_seed=7,
        model_pool=["fake-model"],
    )


@pytest.fixture
def blackboard() -> Blackboard:
    return Blackboard(seed_claim="Entropy never decreases locally", session_id="test-session")


@pytest.fixture
def core_responses() -> Dict[str, str]:
    """Valid explorer and critic answers; every other role is invalid."""
    return {
        "explorer": response_text("explorer"),
        "critic": response_text("critic"),
    }


@pytest.fixture
def fake_client(core_responses) -> FakeClient:
    return FakeClient(responses=core_responses)


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


# FastAPI test client fixtures
@pytest.fixture
def session_manager(core_responses):
    """Session manager wired into the API with scripted clients."""
    from api.routes.sessions import set_session_manager
    from crucible.persistence import InMemoryStore
    from crucible.session import SessionManager

    manager = SessionManager(
        store=InMemoryStore(),
        client_factory=lambda config: FakeClient(responses=core_responses),
        embedder_factory=lambda config: FakeEmbedder(),
    )
    set_session_manager(manager)
    yield manager
    set_session_manager(None)


@pytest.fixture
def test_app(session_manager):
    """Create a test FastAPI application instance."""
    from api.server import app
    return app


@pytest.fixture
async def async_client(test_app):
    """Create an async HTTP client for testing FastAPI endpoints."""
    from httpx import AsyncClient, ASGITransport

    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
