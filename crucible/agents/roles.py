"""
Agent roles for Crucible.

The roster is fixed: thirteen roles, grouped by when the scheduler
activates them.
"""

from enum import Enum
from typing import FrozenSet


class Role(str, Enum):
    """Worker roles."""
    # Core: every cycle
    EXPLORER = "explorer"
    CRITIC = "critic"

    # Analytical: every third cycle
    CONNECTOR = "connector"
    STEELMAN = "steelman"
    OPERATIONALIZER = "operationalizer"
    QUANTIFIER = "quantifier"

    # Structural: every fifth cycle
    REDUCER = "reducer"
    BOUNDARY_HUNTER = "boundary_hunter"
    TRANSLATOR = "translator"
    HISTORIAN = "historian"

    # Gated
    GRAVE_KEEPER = "grave_keeper"
    CARTOGRAPHER = "cartographer"
    PERTURBER = "perturber"


CORE_ROLES: FrozenSet[Role] = frozenset({Role.EXPLORER, Role.CRITIC})

ANALYTICAL_ROLES: FrozenSet[Role] = frozenset({
    Role.CONNECTOR,
    Role.STEELMAN,
    Role.OPERATIONALIZER,
    Role.QUANTIFIER,
})

STRUCTURAL_ROLES: FrozenSet[Role] = frozenset({
    Role.REDUCER,
    Role.BOUNDARY_HUNTER,
    Role.TRANSLATOR,
    Role.HISTORIAN,
})


def parse_role(value: str) -> Role:
    """
    Resolve a role from its name.

    Raises:
        ValueError: If no role has that name
    """
    try:
        return Role(value.strip().lower())
    except (AttributeError, ValueError):
        raise ValueError(f"Unknown role: {value!r}") from None
