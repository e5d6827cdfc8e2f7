"""
Response Schemas for Crucible agents.

One pydantic model per role. A response that fails its model is a
validation failure: the worker contributes nothing this cycle and the
error text is kept for display.
"""

from typing import Dict, List, Literal, Optional, Type

from pydantic import BaseModel, Field, field_validator

from .roles import Role

HEDGING_WORDS = (
    "might",
    "possibly",
    "perhaps",
    "maybe",
    "could be",
    "seems",
    "appears",
    "likely",
    "probably",
    "would seem",
)

TRANSITIONAL_PREFIXES = (
    "therefore",
    "consequently",
    "thus",
    "hence",
    "as a result",
    "accordingly",
    "so",
    "in conclusion",
)

CONCLUSION_INDICATORS = ("therefore", "thus", "consequently", "hence", "so", "as a result")

FRAMEWORKS = ("physics", "information_theory", "economics", "biology", "mathematics")


def strip_transitional_prefix(text: str) -> str:
    """Drop a leading "Therefore,"-style connective and recapitalize."""
    stripped = text.strip()
    lowered = stripped.lower()
    for prefix in TRANSITIONAL_PREFIXES:
        if lowered.startswith(prefix + " ") or lowered.startswith(prefix + ","):
            remainder = stripped[len(prefix):].lstrip(" ,")
            return remainder[:1].upper() + remainder[1:]
    return stripped


def contains_hedging(text: str) -> bool:
    padded = f" {text.lower()} "
    return any(f" {word} " in padded or f" {word}," in padded for word in HEDGING_WORDS)


# =============================================================================
# Core
# =============================================================================

class ExplorerResponse(BaseModel):
    """One inferential step beyond the current claim."""
    new_claim: str = Field(min_length=10)
    inference_type: Literal["deductive", "inductive", "abductive"]
    reasoning: str = ""

    @field_validator("new_claim")
    @classmethod
    def _commit_to_claim(cls, value: str) -> str:
        cleaned = strip_transitional_prefix(value)
        if len(cleaned) < 10:
            raise ValueError("new_claim too short after removing transitional prefix")
        if contains_hedging(cleaned):
            raise ValueError("Hedging detected: must commit to extension without uncertainty")
        return cleaned


class CriticResponse(BaseModel):
    """An objection against the weakest premise."""
    objection: str = Field(min_length=10)
    target_premise: str = Field(min_length=5)
    clarifying_question: str = Field(min_length=10)
    reasoning: str = ""

    @field_validator("target_premise")
    @classmethod
    def _premise_not_conclusion(cls, value: str) -> str:
        lowered = value.strip().lower()
        for indicator in CONCLUSION_INDICATORS:
            if lowered == indicator or lowered.startswith(indicator + " "):
                raise ValueError("target_premise is a conclusion indicator, not an actual premise")
        return value.strip()


# =============================================================================
# Analytical
# =============================================================================

class ConnectorResponse(BaseModel):
    """A cross-domain analogy."""
    analogy: str = Field(min_length=20)
    source_domain: str = Field(min_length=2)
    mapping_explanation: str = Field(min_length=30)


class SteelmanResponse(BaseModel):
    """The strongest opposing view."""
    counter_argument: str = Field(min_length=20)
    key_assumptions: List[str] = Field(min_length=1)
    strongest_point: str = Field(min_length=10)


class OperationalizerResponse(BaseModel):
    """A falsifiable prediction."""
    prediction: str = Field(min_length=20)
    test_conditions: str = Field(min_length=10)
    expected_observation: str = Field(min_length=10)
    surprise_factor: str = Field(min_length=20)


class QuantifierResponse(BaseModel):
    """Numerical bounds on the claim."""
    quantified_claim: str = Field(min_length=15)
    bounds: str = Field(min_length=1)
    bounds_justification: str = Field(min_length=30)
    arbitrary_flag: bool


# =============================================================================
# Structural
# =============================================================================

class ReducerResponse(BaseModel):
    """The claim compressed to its essence."""
    essential_claim: str = Field(min_length=10)
    removed_elements: List[str]
    preserved_elements: List[str]


class BoundaryHunterResponse(BaseModel):
    """An edge case where the claim breaks."""
    edge_case: str = Field(min_length=15)
    why_it_breaks: str = Field(min_length=15)
    consequence: str = Field(min_length=15)


class TranslatorResponse(BaseModel):
    """The claim restated in another framework."""
    translated_claim: str = Field(min_length=20)
    target_framework: str
    revealed_assumption: str = Field(min_length=20)

    @field_validator("target_framework")
    @classmethod
    def _known_framework(cls, value: str) -> str:
        normalized = value.strip().lower().replace(" ", "_")
        if normalized not in FRAMEWORKS:
            raise ValueError(f"target_framework must be one of {', '.join(FRAMEWORKS)}")
        return normalized


class HistorianResponse(BaseModel):
    """Whether the session is re-treading old ground."""
    is_retread: bool
    similar_claims: List[str]
    cycle_numbers: List[int]
    novelty_score: float = Field(ge=0.0, le=1.0)
    analysis: str = ""


# =============================================================================
# Gated
# =============================================================================

class GraveKeeperResponse(BaseModel):
    """Patterns in why claims die."""
    death_risk: float = Field(ge=0.0, le=1.0)
    similar_deaths: Dict[str, str]
    pattern_detected: str = Field(min_length=1)
    survival_suggestion: str = Field(min_length=1)


class CartographerResponse(BaseModel):
    """A direction out of a stagnant region."""
    suggested_direction: str = Field(min_length=10)
    target_region: str = Field(min_length=10)
    exploration_rationale: str = Field(min_length=20)


class PerturberResponse(BaseModel):
    """A pivot toward a frontier idea."""
    pivot_claim: str = Field(min_length=10)
    connection_to_previous: str = Field(min_length=15)
    pivot_rationale: str = Field(min_length=15)


RESPONSE_SCHEMAS: Dict[Role, Type[BaseModel]] = {
    Role.EXPLORER: ExplorerResponse,
    Role.CRITIC: CriticResponse,
    Role.CONNECTOR: ConnectorResponse,
    Role.STEELMAN: SteelmanResponse,
    Role.OPERATIONALIZER: OperationalizerResponse,
    Role.QUANTIFIER: QuantifierResponse,
    Role.REDUCER: ReducerResponse,
    Role.BOUNDARY_HUNTER: BoundaryHunterResponse,
    Role.TRANSLATOR: TranslatorResponse,
    Role.HISTORIAN: HistorianResponse,
    Role.GRAVE_KEEPER: GraveKeeperResponse,
    Role.CARTOGRAPHER: CartographerResponse,
    Role.PERTURBER: PerturberResponse,
}


def schema_for(role: Role) -> Optional[Type[BaseModel]]:
    return RESPONSE_SCHEMAS.get(role)
