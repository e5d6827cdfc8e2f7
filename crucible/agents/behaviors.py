"""
Role behaviors for Crucible.

Each class pairs a system instruction and prompt with its response
schema and its fixed confidence delta:

    explorer +0.10    critic -0.15      connector +0.05
    steelman -0.05    quantifier +0.05  boundary_hunter -0.10

All other roles inform the session without moving support.
"""

from typing import Any, Dict, Optional

from ..blackboard.records import BlackboardSnapshot
from ..blackboard.server import next_framework
from .base import AgentBehavior, json_instructions
from .roles import Role
from .schemas import (
    BoundaryHunterResponse,
    CartographerResponse,
    ConnectorResponse,
    CriticResponse,
    ExplorerResponse,
    GraveKeeperResponse,
    HistorianResponse,
    OperationalizerResponse,
    PerturberResponse,
    QuantifierResponse,
    ReducerResponse,
    SteelmanResponse,
    TranslatorResponse,
)


def _claim_block(snapshot: BlackboardSnapshot, cycle_number: int) -> str:
    lines = [
        f"Cycle: {cycle_number}",
        f"Current claim: {snapshot.claim or '(none)'}",
        f"Support strength: {snapshot.support:.2f}",
    ]
    if snapshot.active_objection:
        lines.append(f"Outstanding objection: {snapshot.active_objection}")
    if snapshot.analogy_of_record:
        lines.append(f"Analogy of record: {snapshot.analogy_of_record}")
    return "\n".join(lines)


def _history_block(snapshot: BlackboardSnapshot, count: int = 10) -> str:
    points = snapshot.recent_trajectory(count)
    if not points:
        return "No prior cycles recorded."
    return "\n".join(
        f"- cycle {p.cycle_number} (support {p.support:.2f}): {p.claim_text}" for p in points
    )


# =============================================================================
# Core
# =============================================================================

class ExplorerBehavior(AgentBehavior):
    role = Role.EXPLORER
    schema = ExplorerResponse
    delta = 0.10
    instruction = (
        "You are the Explorer. Extend claims by one inferential step. "
        "Commit to the extension absolutely; never hedge."
    )

    def build_prompt(self, snapshot: BlackboardSnapshot, cycle_number: int) -> str:
        return "\n\n".join([
            _claim_block(snapshot, cycle_number),
            "Extend the current claim by exactly one inferential step "
            "(deductive, inductive or abductive). The new claim must start with its "
            "subject, not with a connective such as 'Therefore'. Do not use hedging "
            "language such as 'might', 'perhaps' or 'probably'.",
            json_instructions({
                "new_claim": "Your definitive extension of the claim",
                "inference_type": "deductive|inductive|abductive",
                "reasoning": "Brief explanation of the inference",
            }),
        ])

    def summarize(self, data: Dict[str, Any]) -> str:
        return data.get("new_claim", "")


class CriticBehavior(AgentBehavior):
    role = Role.CRITIC
    schema = CriticResponse
    delta = -0.15
    instruction = (
        "You are the Critic. Attack the weakest premise of the claim. "
        "Target a premise, never the conclusion."
    )

    def build_prompt(self, snapshot: BlackboardSnapshot, cycle_number: int) -> str:
        return "\n\n".join([
            _claim_block(snapshot, cycle_number),
            "Identify the single weakest premise the claim depends on and object to it. "
            "Quote the premise in target_premise and ask one clarifying question that "
            "would have to be answered for the claim to survive.",
            json_instructions({
                "objection": "Your specific objection",
                "target_premise": "The premise you are attacking",
                "clarifying_question": "A probing question",
                "reasoning": "Why this premise is weak",
            }),
        ])

    def summarize(self, data: Dict[str, Any]) -> str:
        return data.get("objection", "")


# =============================================================================
# Analytical
# =============================================================================

class ConnectorBehavior(AgentBehavior):
    role = Role.CONNECTOR
    schema = ConnectorResponse
    delta = 0.05
    instruction = "You are the Connector. Find a cross-domain analogy that illuminates the claim."

    def build_prompt(self, snapshot: BlackboardSnapshot, cycle_number: int) -> str:
        return "\n\n".join([
            _claim_block(snapshot, cycle_number),
            "Find a structural analogy from an unrelated domain and map its parts "
            "onto the claim explicitly.",
            json_instructions({
                "analogy": "The analogy",
                "source_domain": "Domain the analogy comes from",
                "mapping_explanation": "How each element maps onto the claim",
            }),
        ])

    def summarize(self, data: Dict[str, Any]) -> str:
        return data.get("analogy", "")


class SteelmanBehavior(AgentBehavior):
    role = Role.STEELMAN
    schema = SteelmanResponse
    delta = -0.05
    instruction = "You are the Steelman. Build the strongest possible opposing view."

    def build_prompt(self, snapshot: BlackboardSnapshot, cycle_number: int) -> str:
        return "\n\n".join([
            _claim_block(snapshot, cycle_number),
            "State the strongest argument against the claim, as its most capable "
            "opponent would, and list the assumptions it rests on.",
            json_instructions({
                "counter_argument": "The strongest opposing argument",
                "key_assumptions": ["assumption one", "assumption two"],
                "strongest_point": "The single most damaging point",
            }),
        ])

    def frontier_proposal(self, data: Dict[str, Any]) -> Optional[str]:
        return data.get("counter_argument") or None

    def summarize(self, data: Dict[str, Any]) -> str:
        return data.get("strongest_point", "")


class OperationalizerBehavior(AgentBehavior):
    role = Role.OPERATIONALIZER
    schema = OperationalizerResponse
    delta = 0.0
    instruction = "You are the Operationalizer. Turn the claim into a falsifiable prediction."

    def build_prompt(self, snapshot: BlackboardSnapshot, cycle_number: int) -> str:
        return "\n\n".join([
            _claim_block(snapshot, cycle_number),
            "Derive a prediction that would be surprising if the claim were false, "
            "and describe how to test it.",
            json_instructions({
                "prediction": "The falsifiable prediction",
                "test_conditions": "Conditions of the test",
                "expected_observation": "What should be observed",
                "surprise_factor": "Why the observation would be surprising otherwise",
            }),
        ])


class QuantifierBehavior(AgentBehavior):
    role = Role.QUANTIFIER
    schema = QuantifierResponse
    delta = 0.05
    instruction = "You are the Quantifier. Add numerical precision to the claim."

    def build_prompt(self, snapshot: BlackboardSnapshot, cycle_number: int) -> str:
        return "\n\n".join([
            _claim_block(snapshot, cycle_number),
            "Restate the claim with explicit numerical bounds and justify them. "
            "Set arbitrary_flag to true if the bounds cannot be justified.",
            json_instructions({
                "quantified_claim": "The claim with numbers",
                "bounds": "The numerical bounds",
                "bounds_justification": "Why these bounds",
                "arbitrary_flag": "true|false",
            }),
        ])


# =============================================================================
# Structural
# =============================================================================

class ReducerBehavior(AgentBehavior):
    role = Role.REDUCER
    schema = ReducerResponse
    delta = 0.0
    instruction = "You are the Reducer. Compress the claim to its essence."

    def build_prompt(self, snapshot: BlackboardSnapshot, cycle_number: int) -> str:
        return "\n\n".join([
            _claim_block(snapshot, cycle_number),
            "Remove everything that is not load-bearing and state what remains.",
            json_instructions({
                "essential_claim": "The compressed claim",
                "removed_elements": ["element removed"],
                "preserved_elements": ["element kept"],
            }),
        ])


class BoundaryHunterBehavior(AgentBehavior):
    role = Role.BOUNDARY_HUNTER
    schema = BoundaryHunterResponse
    delta = -0.10
    instruction = "You are the Boundary Hunter. Find the edge case where the claim breaks."

    def build_prompt(self, snapshot: BlackboardSnapshot, cycle_number: int) -> str:
        return "\n\n".join([
            _claim_block(snapshot, cycle_number),
            "Find a concrete edge case where the claim fails and explain the consequence.",
            json_instructions({
                "edge_case": "The edge case",
                "why_it_breaks": "Why the claim fails there",
                "consequence": "What follows for the claim",
            }),
        ])

    def summarize(self, data: Dict[str, Any]) -> str:
        return data.get("edge_case", "")


class TranslatorBehavior(AgentBehavior):
    role = Role.TRANSLATOR
    schema = TranslatorResponse
    delta = 0.0
    instruction = (
        "You are the Translator. Restate the claim in another framework "
        "to expose its hidden assumptions."
    )

    def build_prompt(self, snapshot: BlackboardSnapshot, cycle_number: int) -> str:
        framework = next_framework(snapshot.translator_frameworks_used)
        return "\n\n".join([
            _claim_block(snapshot, cycle_number),
            f"Restate the claim in the language of {framework.replace('_', ' ')} "
            f"(target_framework: {framework}) and name one assumption the "
            "translation reveals.",
            json_instructions({
                "translated_claim": "The restated claim",
                "target_framework": framework,
                "revealed_assumption": "Assumption exposed by the translation",
            }),
        ])


class HistorianBehavior(AgentBehavior):
    role = Role.HISTORIAN
    schema = HistorianResponse
    delta = 0.0
    instruction = "You are the Historian. Detect when the session re-treads old ground."

    def build_prompt(self, snapshot: BlackboardSnapshot, cycle_number: int) -> str:
        return "\n\n".join([
            _claim_block(snapshot, cycle_number),
            "Claim history:\n" + _history_block(snapshot),
            "Decide whether the current claim repeats an earlier one.",
            json_instructions({
                "is_retread": "true|false",
                "similar_claims": ["earlier claim"],
                "cycle_numbers": [1],
                "novelty_score": "0.0-1.0",
                "analysis": "Short analysis",
            }),
        ])


# =============================================================================
# Gated
# =============================================================================

class GraveKeeperBehavior(AgentBehavior):
    role = Role.GRAVE_KEEPER
    schema = GraveKeeperResponse
    delta = 0.0
    instruction = "You are the Grave Keeper. Find patterns in why ideas die."

    def build_prompt(self, snapshot: BlackboardSnapshot, cycle_number: int) -> str:
        if snapshot.cemetery:
            cemetery = "\n".join(
                f"- {c.claim} (cycle {c.cycle_killed}, cause: {c.cause_of_death})"
                for c in snapshot.cemetery[-10:]
            )
        else:
            cemetery = "The cemetery is empty."
        return "\n\n".join([
            _claim_block(snapshot, cycle_number),
            "Cemetery:\n" + cemetery,
            "Estimate how likely the current claim is to die the same way and suggest "
            "how it could survive.",
            json_instructions({
                "death_risk": "0.0-1.0",
                "similar_deaths": {"claim": "reason"},
                "pattern_detected": "The pattern",
                "survival_suggestion": "How to survive",
            }),
        ])


class CartographerBehavior(AgentBehavior):
    role = Role.CARTOGRAPHER
    schema = CartographerResponse
    delta = 0.0
    instruction = (
        "You are the Cartographer. The session is circling one region of idea space; "
        "navigate it somewhere new."
    )

    def build_prompt(self, snapshot: BlackboardSnapshot, cycle_number: int) -> str:
        return "\n\n".join([
            _claim_block(snapshot, cycle_number),
            "Recent trajectory:\n" + _history_block(snapshot, 5),
            "Propose a direction that moves away from the recent claims.",
            json_instructions({
                "suggested_direction": "The new direction, stated as a claim",
                "target_region": "The region of idea space it reaches",
                "exploration_rationale": "Why this direction is promising",
            }),
        ])

    def frontier_proposal(self, data: Dict[str, Any]) -> Optional[str]:
        return data.get("suggested_direction") or None


class PerturberBehavior(AgentBehavior):
    role = Role.PERTURBER
    schema = PerturberResponse
    delta = 0.0
    instruction = "You are the Perturber. Inject a frontier idea into the session."

    def build_prompt(self, snapshot: BlackboardSnapshot, cycle_number: int) -> str:
        pivot = snapshot.pivot_idea.idea_text if snapshot.pivot_idea else "(no frontier idea)"
        return "\n\n".join([
            _claim_block(snapshot, cycle_number),
            f"Frontier idea: {pivot}",
            "Pivot the claim toward the frontier idea while keeping a thread to "
            "what came before.",
            json_instructions({
                "pivot_claim": "The pivoted claim",
                "connection_to_previous": "How it connects to the current claim",
                "pivot_rationale": "Why pivot now",
            }),
        ])
