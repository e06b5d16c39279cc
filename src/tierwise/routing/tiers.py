"""Model tier registry.

Tiers are discrete capability/cost buckets. The router maps an intent
to the minimum tier that can serve it, then resolves a concrete model:

    T0 - No model needed (canned response, lookup)
    T1 - Local/small model (short replies, reminders)
    T2 - Cloud fast (conversation, moderate reasoning)
    T3 - Cloud smart (system design, code review)
    T4 - Cloud best (mock interviews, deep analysis)
"""

from dataclasses import dataclass

from tierwise.types import IntentComplexity, ModelRef, ModelTierId


@dataclass(frozen=True)
class TierCapabilities:
    """Capability scores on a 0-1 scale."""
    instruction_following: float
    reasoning: float
    coding: float
    long_form_generation: float
    knowledge: float
    context_utilization: float

    def as_dict(self) -> dict[str, float]:
        return {
            "instruction_following": self.instruction_following,
            "reasoning": self.reasoning,
            "coding": self.coding,
            "long_form_generation": self.long_form_generation,
            "knowledge": self.knowledge,
            "context_utilization": self.context_utilization,
        }


@dataclass(frozen=True)
class TierDefinition:
    """Static metadata for a tier."""
    id: ModelTierId
    name: str
    description: str
    capabilities: TierCapabilities
    cost_per_1k_input: float  # USD, 0 = free/local
    latency: str  # instant, fast, moderate, slow
    requires_network: bool


TIER_ORDER: tuple[ModelTierId, ...] = (
    ModelTierId.T0,
    ModelTierId.T1,
    ModelTierId.T2,
    ModelTierId.T3,
    ModelTierId.T4,
)

_TIER_DEFINITIONS: dict[ModelTierId, TierDefinition] = {
    ModelTierId.T0: TierDefinition(
        id=ModelTierId.T0,
        name="No Model",
        description="Canned responses and lookups, no LLM invocation.",
        capabilities=TierCapabilities(0.0, 0.0, 0.0, 0.0, 0.0, 0.0),
        cost_per_1k_input=0.0,
        latency="instant",
        requires_network=False,
    ),
    ModelTierId.T1: TierDefinition(
        id=ModelTierId.T1,
        name="Local Small",
        description="Local model for simple generation, short replies and reminders.",
        capabilities=TierCapabilities(0.5, 0.3, 0.2, 0.3, 0.4, 0.3),
        cost_per_1k_input=0.0,
        latency="slow",
        requires_network=False,
    ),
    ModelTierId.T2: TierDefinition(
        id=ModelTierId.T2,
        name="Cloud Fast",
        description="Cloud model for conversation, instruction following and moderate reasoning.",
        capabilities=TierCapabilities(0.85, 0.7, 0.7, 0.75, 0.8, 0.8),
        cost_per_1k_input=0.003,
        latency="fast",
        requires_network=True,
    ),
    ModelTierId.T3: TierDefinition(
        id=ModelTierId.T3,
        name="Cloud Smart",
        description="Cloud model for system design, multi-step reasoning and code review.",
        capabilities=TierCapabilities(0.95, 0.9, 0.9, 0.9, 0.9, 0.9),
        cost_per_1k_input=0.015,
        latency="moderate",
        requires_network=True,
    ),
    ModelTierId.T4: TierDefinition(
        id=ModelTierId.T4,
        name="Cloud Best",
        description="Premium cloud model for mock interviews, deep analysis and novel problems.",
        capabilities=TierCapabilities(1.0, 1.0, 1.0, 1.0, 1.0, 1.0),
        cost_per_1k_input=0.015,
        latency="moderate",
        requires_network=True,
    ),
}

# EXPLICIT is a sentinel: the router bypasses tier selection for it
_INTENT_TO_MIN_TIER: dict[IntentComplexity, ModelTierId] = {
    IntentComplexity.TRIVIAL: ModelTierId.T0,
    IntentComplexity.SIMPLE: ModelTierId.T1,
    IntentComplexity.STANDARD: ModelTierId.T2,
    IntentComplexity.COMPLEX: ModelTierId.T3,
    IntentComplexity.FLAGSHIP: ModelTierId.T4,
    IntentComplexity.EXPLICIT: ModelTierId.T4,
}

# Built-in models used when config has no override for a tier
_DEFAULT_TIER_MODELS: dict[ModelTierId, ModelRef | None] = {
    ModelTierId.T0: None,
    ModelTierId.T1: ModelRef("ollama", "qwen2.5:7b"),
    ModelTierId.T2: ModelRef("anthropic", "claude-sonnet-4-5"),
    ModelTierId.T3: ModelRef("anthropic", "claude-sonnet-4-5"),
    ModelTierId.T4: ModelRef("anthropic", "claude-opus-4-5"),
}


def get_tier_definition(tier: ModelTierId) -> TierDefinition:
    """Get the definition for a tier."""
    return _TIER_DEFINITIONS[ModelTierId(tier)]


def all_tier_definitions() -> list[TierDefinition]:
    """Get all tier definitions ordered T0 -> T4."""
    return [_TIER_DEFINITIONS[tier] for tier in TIER_ORDER]


def minimum_tier(intent: IntentComplexity) -> ModelTierId:
    """Minimum tier required to serve an intent."""
    return _INTENT_TO_MIN_TIER[IntentComplexity(intent)]


def default_model_for(tier: ModelTierId) -> ModelRef | None:
    """Built-in model for a tier. None only for T0."""
    return _DEFAULT_TIER_MODELS[ModelTierId(tier)]


def tier_index(tier: ModelTierId) -> int:
    """Position in the total order (t0=0 ... t4=4)."""
    return TIER_ORDER.index(ModelTierId(tier))


def tier_at(index: int) -> ModelTierId:
    """Tier at an index, saturating at both ends."""
    return TIER_ORDER[max(0, min(index, len(TIER_ORDER) - 1))]


def is_higher_tier(a: ModelTierId, b: ModelTierId) -> bool:
    """True if `a` is more capable than `b`."""
    return tier_index(a) > tier_index(b)


def max_tier(a: ModelTierId, b: ModelTierId) -> ModelTierId:
    """The higher of two tiers."""
    return ModelTierId(a) if tier_index(a) >= tier_index(b) else ModelTierId(b)


def clamp_tier(tier: ModelTierId, max_allowed: ModelTierId) -> ModelTierId:
    """Clamp a tier to a maximum (used for budget downgrades)."""
    if tier_index(tier) <= tier_index(max_allowed):
        return ModelTierId(tier)
    return ModelTierId(max_allowed)
