"""
Agent behavior interface for Crucible.

Every role implements the same three steps:
1. build_request: turn a blackboard snapshot into chat messages
2. parse_response: decode and validate the model's JSON answer
3. confidence_delta: the support change a valid answer proposes

Behaviors are stateless; the same instance serves every session.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from ..blackboard.records import BlackboardSnapshot
from .roles import Role

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json|JSON)?\s*(.*?)\s*```$", re.DOTALL)


@dataclass(frozen=True)
class AgentRequest:
    """System instruction and user prompt for one worker call."""

    role: Role
    system: str
    prompt: str

    def to_messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.prompt},
        ]


@dataclass(frozen=True)
class ParsedResponse:
    """Result of validating a model response."""

    valid: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Dict[str, Any]) -> "ParsedResponse":
        return cls(valid=True, data=data)

    @classmethod
    def failed(cls, error: str) -> "ParsedResponse":
        return cls(valid=False, error=error)


def decode_json_response(text: str) -> Dict[str, Any]:
    """
    Decode a JSON object from model output.

    Strips markdown code fences and, failing a direct parse, falls back
    to the outermost ``{...}`` span.

    Raises:
        ValueError: If no JSON object can be decoded
    """
    if not text or not text.strip():
        raise ValueError("Empty response")

    candidate = text.strip()
    match = _FENCE_RE.match(candidate)
    if match:
        candidate = match.group(1)

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        start = candidate.find("{")
        end = candidate.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("Invalid JSON format") from None
        try:
            data = json.loads(candidate[start:end + 1])
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON format: {e.msg}") from None

    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


def format_validation_error(error: ValidationError) -> str:
    """Compact one-line summary of a pydantic validation error."""
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "response"
        parts.append(f"{location}: {item.get('msg', 'invalid')}")
    return "; ".join(parts)


def json_instructions(fields: Dict[str, str]) -> str:
    """Prompt fragment asking for a JSON object with the given fields."""
    example = json.dumps(fields, indent=2)
    return f"Respond with a single JSON object in exactly this shape:\n{example}"


class AgentBehavior(ABC):
    """
    Base class for role behaviors.

    Subclasses set ``role``, ``schema``, ``delta`` and ``instruction`` and
    implement ``build_prompt``.
    """

    role: Role
    schema: Type[BaseModel]
    delta: float = 0.0
    instruction: str = ""

    def build_request(self, snapshot: BlackboardSnapshot, cycle_number: int) -> AgentRequest:
        """Build the chat request for this role."""
        return AgentRequest(
            role=self.role,
            system=self.instruction,
            prompt=self.build_prompt(snapshot, cycle_number),
        )

    @abstractmethod
    def build_prompt(self, snapshot: BlackboardSnapshot, cycle_number: int) -> str:
        """User prompt for this role."""
        pass

    def parse_response(self, text: str) -> ParsedResponse:
        """Decode and validate a response against the role schema."""
        try:
            data = decode_json_response(text)
        except ValueError as e:
            return ParsedResponse.failed(str(e))

        try:
            model = self.schema.model_validate(data)
        except ValidationError as e:
            return ParsedResponse.failed(format_validation_error(e))

        return ParsedResponse.ok(model.model_dump())

    def confidence_delta(self, parsed: ParsedResponse) -> float:
        """Support change proposed by a response; zero unless valid."""
        return self.delta if parsed.valid else 0.0

    def frontier_proposal(self, data: Dict[str, Any]) -> Optional[str]:
        """Idea this role sponsors into the frontier pool, if any."""
        return None

    def summarize(self, data: Dict[str, Any]) -> str:
        """Short human-readable summary of a valid response."""
        for value in data.values():
            if isinstance(value, str) and value:
                return value[:200]
        return self.role.value
