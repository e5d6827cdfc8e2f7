"""
Agent roster for Crucible.

Thirteen roles, each with a prompt, a response schema and a fixed
confidence delta.

Usage:
    from crucible.agents import Role, get_behavior

    behavior = get_behavior(Role.CRITIC)
    request = behavior.build_request(snapshot, cycle_number=3)
    parsed = behavior.parse_response(text)
    delta = behavior.confidence_delta(parsed)
"""

from .base import (
    AgentBehavior,
    AgentRequest,
    ParsedResponse,
    decode_json_response,
)
from .registry import BEHAVIORS, get_behavior
from .roles import (
    ANALYTICAL_ROLES,
    CORE_ROLES,
    STRUCTURAL_ROLES,
    Role,
    parse_role,
)

__all__ = [
    "AgentBehavior",
    "AgentRequest",
    "ParsedResponse",
    "decode_json_response",
    "BEHAVIORS",
    "get_behavior",
    "ANALYTICAL_ROLES",
    "CORE_ROLES",
    "STRUCTURAL_ROLES",
    "Role",
    "parse_role",
]
