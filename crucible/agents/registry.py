"""
Behavior registry: exactly one behavior per role.
"""

from typing import Dict

from .base import AgentBehavior
from .behaviors import (
    BoundaryHunterBehavior,
    CartographerBehavior,
    ConnectorBehavior,
    CriticBehavior,
    ExplorerBehavior,
    GraveKeeperBehavior,
    HistorianBehavior,
    OperationalizerBehavior,
    PerturberBehavior,
    QuantifierBehavior,
    ReducerBehavior,
    SteelmanBehavior,
    TranslatorBehavior,
)
from .roles import Role


def _build_registry() -> Dict[Role, AgentBehavior]:
    behaviors = [
        ExplorerBehavior(),
        CriticBehavior(),
        ConnectorBehavior(),
        SteelmanBehavior(),
        OperationalizerBehavior(),
        QuantifierBehavior(),
        ReducerBehavior(),
        BoundaryHunterBehavior(),
        TranslatorBehavior(),
        HistorianBehavior(),
        GraveKeeperBehavior(),
        CartographerBehavior(),
        PerturberBehavior(),
    ]
    registry = {behavior.role: behavior for behavior in behaviors}

    missing = set(Role) - set(registry)
    if missing or len(registry) != len(behaviors):
        raise RuntimeError(
            f"Behavior registry is not one-to-one with Role (missing: "
            f"{sorted(r.value for r in missing)})"
        )
    return registry


BEHAVIORS: Dict[Role, AgentBehavior] = _build_registry()


def get_behavior(role: Role) -> AgentBehavior:
    """Behavior implementing a role."""
    return BEHAVIORS[Role(role)]
