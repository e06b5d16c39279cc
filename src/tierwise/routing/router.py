"""Intelligent model router.

Selects a model tier and concrete model for each inbound message:

    1. Session model override (user ran /model)  -> bypass
    2. Classify intent; explicit model request    -> bypass
    3. Intent -> minimum tier
    4. Apply bias (cost/balanced/quality, one step at most)
    5. Apply budget clamp (prefer_free, daily cap, monthly cap -> T1)
    6. Resolve the tier to a model (tier override -> built-in default
       -> global default -> hard-coded fallback)
    7. Adapt the system prompt for the tier
    8. Record an analytics event

The router holds no state besides the write-only analytics sink, so
identical inputs always produce identical decisions.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from tierwise.config import AgentConfig, IntelligentRoutingConfig, RoutingBudgetConfig
from tierwise.context_engine.prompt_adapter import AdaptedPrompt, adapt_prompt_for_tier
from tierwise.routing.analytics import AnalyticsEventType, RoutingAnalyticsEvent
from tierwise.routing.classifier import ClassificationResult, classify
from tierwise.routing.tiers import (
    clamp_tier,
    default_model_for,
    get_tier_definition,
    minimum_tier,
    tier_at,
    tier_index,
)
from tierwise.types import (
    DEFAULT_MODEL,
    DEFAULT_PROVIDER,
    IntentComplexity,
    ModelRef,
    ModelTierId,
    RoutingBias,
)

logger = logging.getLogger(__name__)

SESSION_OVERRIDE_REASON = "session model override"
EXPLICIT_REQUEST_REASON = "explicit model request in message"

# Tier used for prompt adaptation when routing is bypassed
BYPASS_TIER = ModelTierId.T3

# Budget clamps never go below this tier
BUDGET_CEILING_TIER = ModelTierId.T1

WELL_KNOWN_ENDPOINTS = {
    "anthropic": "https://api.anthropic.com",
    "openai": "https://api.openai.com",
}

# Rough share of the per-1K input price a typical turn costs
ESTIMATED_COST_FACTOR = 0.5


class AnalyticsSink(Protocol):
    enabled: bool

    def record(self, event: RoutingAnalyticsEvent) -> None: ...


@dataclass(frozen=True)
class RoutingDecision:
    """The result of routing one message.

    When bypassed, tier == original_tier and bypass_reason is set.
    """
    model: ModelRef
    tier: ModelTierId
    original_tier: ModelTierId
    classification: ClassificationResult
    adapted_prompt: AdaptedPrompt
    bypassed: bool = False
    bypass_reason: str | None = None
    max_tokens: int | None = None  # from the tier's config, for the caller's model call

    @property
    def downgraded(self) -> bool:
        """True if bias or budget moved the tier away from the minimum."""
        return self.tier != self.original_tier

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": str(self.model),
            "tier": self.tier.value,
            "original_tier": self.original_tier.value,
            "intent": self.classification.intent.value,
            "confidence": self.classification.confidence,
            "reason": self.classification.reason,
            "prompt_adapted": self.adapted_prompt.was_adapted,
            "bypassed": self.bypassed,
            "bypass_reason": self.bypass_reason,
            "max_tokens": self.max_tokens,
        }


# ── Policy stages ──────────────────────────────────────


def apply_bias(tier: ModelTierId, bias: RoutingBias) -> ModelTierId:
    """Shift a tier by at most one step.

    - cost: down one tier, but T0/T1 are already minimal
    - quality: up one tier, T4 is already the max
    - balanced: unchanged
    """
    tier = ModelTierId(tier)
    idx = tier_index(tier)

    if bias == RoutingBias.COST:
        return tier if idx <= 1 else tier_at(idx - 1)
    if bias == RoutingBias.QUALITY:
        return tier if idx >= 4 else tier_at(idx + 1)
    return tier


def apply_budget_constraints(
    tier: ModelTierId,
    budget: RoutingBudgetConfig | None,
) -> ModelTierId:
    """Clamp a tier to T1 when the budget says so.

    Rules, first applicable wins:
    - prefer_free
    - daily spend >= daily cap
    - monthly spend >= monthly cap

    Spend totals come from the caller. A missing total disables its
    rule rather than blocking.
    """
    tier = ModelTierId(tier)
    if budget is None:
        return tier

    if budget.prefer_free:
        return clamp_tier(tier, BUDGET_CEILING_TIER)

    spend = budget.current_spend
    if spend is None:
        return tier

    if budget.daily_cap_usd is not None and spend.daily_usd is not None:
        if spend.daily_usd >= budget.daily_cap_usd:
            return clamp_tier(tier, BUDGET_CEILING_TIER)

    if budget.monthly_cap_usd is not None and spend.monthly_usd is not None:
        if spend.monthly_usd >= budget.monthly_cap_usd:
            return clamp_tier(tier, BUDGET_CEILING_TIER)

    return tier


def resolve_model_for_tier(
    tier: ModelTierId,
    routing_config: IntelligentRoutingConfig,
    cfg: AgentConfig,
) -> ModelRef:
    """Resolve a tier to a concrete model. Always returns a model.

    Order: tier override in config, built-in tier default, the
    agent's global default model, then DEFAULT_PROVIDER/DEFAULT_MODEL.
    Malformed model strings are skipped.
    """
    tier = ModelTierId(tier)
    tier_config = routing_config.tiers.get(tier)
    if tier_config is not None:
        parsed = ModelRef.parse(tier_config.model, DEFAULT_PROVIDER)
        if parsed:
            return parsed
        logger.debug(f"Ignoring malformed model override for {tier.value}: {tier_config.model!r}")

    builtin = default_model_for(tier)
    if builtin:
        return builtin

    parsed = ModelRef.parse(cfg.default_model, DEFAULT_PROVIDER)
    if parsed:
        return parsed

    return ModelRef(DEFAULT_PROVIDER, DEFAULT_MODEL)


def resolve_max_tokens(tier: ModelTierId, routing_config: IntelligentRoutingConfig) -> int | None:
    tier_config = routing_config.tiers.get(ModelTierId(tier))
    return tier_config.max_tokens if tier_config is not None else None


def resolve_endpoint(provider: str, cfg: AgentConfig | None) -> str | None:
    """API base URL for a provider: config first, then well-known defaults."""
    if cfg is not None:
        provider_config = cfg.providers.get(provider)
        if provider_config is not None and provider_config.base_url:
            return provider_config.base_url
    return WELL_KNOWN_ENDPOINTS.get(provider)


def estimate_cost_usd(tier: ModelTierId) -> float | None:
    """Rough per-request cost estimate, None for free tiers."""
    cost = get_tier_definition(tier).cost_per_1k_input
    return cost * ESTIMATED_COST_FACTOR if cost > 0 else None


# ── Router ─────────────────────────────────────────────


def _safe_record(analytics: AnalyticsSink | None, event: RoutingAnalyticsEvent) -> None:
    """Hand an event to the sink. Sink failures never reach the caller."""
    if analytics is None or not analytics.enabled:
        return
    try:
        analytics.record(event)
    except Exception as e:
        logger.debug(f"Analytics sink rejected {event.event.value} event: {e}")


def _event_type(decision: RoutingDecision) -> AnalyticsEventType:
    if decision.bypassed:
        return AnalyticsEventType.OVERRIDE
    if decision.downgraded:
        return AnalyticsEventType.BUDGET_DOWNGRADE
    return AnalyticsEventType.ROUTE


def _record_decision(
    analytics: AnalyticsSink | None,
    decision: RoutingDecision,
    message: str,
    cfg: AgentConfig,
    session_id: str | None,
    channel: str | None,
) -> None:
    if analytics is None or not analytics.enabled:
        return
    event = RoutingAnalyticsEvent(
        event=_event_type(decision),
        intent=decision.classification.intent,
        confidence=decision.classification.confidence,
        tier=decision.tier,
        original_tier=decision.original_tier if decision.downgraded else None,
        provider=decision.model.provider,
        model=decision.model.model,
        endpoint=resolve_endpoint(decision.model.provider, cfg),
        session_id=session_id,
        channel=channel,
        message_length=len(message),
        estimated_cost_usd=estimate_cost_usd(decision.tier),
        classifier_reason=decision.classification.reason,
        prompt_adapted=decision.adapted_prompt.was_adapted,
    )
    _safe_record(analytics, event)


def route_message(
    message: str,
    system_prompt: str,
    cfg: AgentConfig,
    routing_config: IntelligentRoutingConfig,
    session_model_override: ModelRef | None = None,
    channel: str | None = None,
    session_id: str | None = None,
    analytics: AnalyticsSink | None = None,
) -> RoutingDecision:
    """Route an inbound message to a model and an adapted prompt.

    Args:
        message: The inbound user message.
        system_prompt: The full system prompt, before adaptation.
        cfg: Agent config (global default model, provider endpoints).
        routing_config: The intelligent_routing config section.
        session_model_override: Model pinned by the session (/model).
            Bypasses tier selection.
        channel: Source channel, for analytics.
        session_id: Session ID, for analytics.
        analytics: Optional event sink.

    Returns:
        RoutingDecision with model, tier, classification and prompt.
    """
    message = message if isinstance(message, str) else ""
    classification = classify(message)

    if session_model_override is not None:
        decision = RoutingDecision(
            model=session_model_override,
            tier=BYPASS_TIER,
            original_tier=BYPASS_TIER,
            classification=classification,
            adapted_prompt=adapt_prompt_for_tier(system_prompt, BYPASS_TIER),
            bypassed=True,
            bypass_reason=SESSION_OVERRIDE_REASON,
        )
    elif classification.intent == IntentComplexity.EXPLICIT:
        decision = RoutingDecision(
            model=resolve_model_for_tier(BYPASS_TIER, routing_config, cfg),
            tier=BYPASS_TIER,
            original_tier=BYPASS_TIER,
            classification=classification,
            adapted_prompt=adapt_prompt_for_tier(system_prompt, BYPASS_TIER),
            bypassed=True,
            bypass_reason=EXPLICIT_REQUEST_REASON,
            max_tokens=resolve_max_tokens(BYPASS_TIER, routing_config),
        )
    else:
        min_tier = minimum_tier(classification.intent)
        biased_tier = apply_bias(min_tier, routing_config.bias)
        budget_tier = apply_budget_constraints(biased_tier, routing_config.budget)
        decision = RoutingDecision(
            model=resolve_model_for_tier(budget_tier, routing_config, cfg),
            tier=budget_tier,
            original_tier=min_tier,
            classification=classification,
            adapted_prompt=adapt_prompt_for_tier(system_prompt, budget_tier),
            max_tokens=resolve_max_tokens(budget_tier, routing_config),
        )

    logger.debug(
        f"Routed intent={classification.intent.value} "
        f"({classification.confidence:.2f}, {classification.reason}) "
        f"tier={decision.original_tier.value}->{decision.tier.value} model={decision.model}"
        + (f" bypass={decision.bypass_reason}" if decision.bypassed else "")
    )

    _record_decision(analytics, decision, message, cfg, session_id, channel)
    return decision


def record_routing_completion(
    analytics: AnalyticsSink | None,
    decision: RoutingDecision,
    latency_ms: float,
    response_size: int | None = None,
    cfg: AgentConfig | None = None,
) -> None:
    """Record a "complete" event after the model call returns.

    Telemetry only; it never feeds back into selection.
    """
    if analytics is None or not analytics.enabled:
        return
    _safe_record(analytics, RoutingAnalyticsEvent(
        event=AnalyticsEventType.COMPLETE,
        intent=decision.classification.intent,
        confidence=decision.classification.confidence,
        tier=decision.tier,
        provider=decision.model.provider,
        model=decision.model.model,
        endpoint=resolve_endpoint(decision.model.provider, cfg),
        message_length=0,
        latency_ms=latency_ms,
        response_size=response_size,
        estimated_cost_usd=None,
        prompt_adapted=decision.adapted_prompt.was_adapted,
    ))


def record_routing_fallback(
    analytics: AnalyticsSink | None,
    decision: RoutingDecision,
    fallback_model: ModelRef,
    reason: str,
    cfg: AgentConfig | None = None,
) -> None:
    """Record a "fallback" event when the host retried on another model."""
    if analytics is None or not analytics.enabled:
        return
    _safe_record(analytics, RoutingAnalyticsEvent(
        event=AnalyticsEventType.FALLBACK,
        intent=decision.classification.intent,
        confidence=decision.classification.confidence,
        tier=decision.tier,
        provider=fallback_model.provider,
        model=fallback_model.model,
        endpoint=resolve_endpoint(fallback_model.provider, cfg),
        message_length=0,
        estimated_cost_usd=None,
        classifier_reason=decision.classification.reason,
        fallback_reason=reason,
        prompt_adapted=decision.adapted_prompt.was_adapted,
    ))


class IntelligentRouter:
    """Routes messages for one agent config.

    Usage:
        router = IntelligentRouter(cfg, analytics=analytics)
        decision = router.route("what is SGD?", system_prompt)
        # decision.tier = ModelTierId.T1
        router.record_completion(decision, latency_ms=820.0)
    """

    def __init__(
        self,
        cfg: AgentConfig,
        routing_config: IntelligentRoutingConfig | None = None,
        analytics: AnalyticsSink | None = None,
    ):
        self.cfg = cfg
        self.routing_config = (
            routing_config or cfg.intelligent_routing or IntelligentRoutingConfig()
        )
        self.analytics = analytics

    def route(
        self,
        message: str,
        system_prompt: str,
        session_model_override: ModelRef | None = None,
        channel: str | None = None,
        session_id: str | None = None,
    ) -> RoutingDecision:
        return route_message(
            message,
            system_prompt,
            self.cfg,
            self.routing_config,
            session_model_override=session_model_override,
            channel=channel,
            session_id=session_id,
            analytics=self.analytics,
        )

    def record_completion(
        self,
        decision: RoutingDecision,
        latency_ms: float,
        response_size: int | None = None,
    ) -> None:
        record_routing_completion(self.analytics, decision, latency_ms, response_size, self.cfg)

    def record_fallback(self, decision: RoutingDecision, fallback_model: ModelRef, reason: str) -> None:
        record_routing_fallback(self.analytics, decision, fallback_model, reason, self.cfg)
