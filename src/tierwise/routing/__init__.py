"""Intelligent model routing.

- Intent classification by local regex/heuristics (no LLM call)
- Capability tiers T0-T4 with intent -> minimum tier mapping
- Cost/quality bias and budget clamps
- Session model pinning and explicit model requests bypass routing
- JSONL analytics of every decision

Most messages don't need the most expensive model. Routing each one to
the cheapest tier that can handle it keeps quality where it matters and
cost down everywhere else.
"""

from tierwise.routing.analytics import (
    AnalyticsEventType,
    AnalyticsRegistry,
    RoutingAnalyticsEvent,
    RoutingAnalyticsLogger,
    create_routing_analytics_logger,
)
from tierwise.routing.classifier import ClassificationResult, ClassificationSignal, classify
from tierwise.routing.integration import IntelligentRouting, IntelligentRoutingResult
from tierwise.routing.router import (
    IntelligentRouter,
    RoutingDecision,
    apply_bias,
    apply_budget_constraints,
    record_routing_completion,
    record_routing_fallback,
    resolve_model_for_tier,
    route_message,
)
from tierwise.routing.tiers import (
    TIER_ORDER,
    TierDefinition,
    clamp_tier,
    default_model_for,
    get_tier_definition,
    minimum_tier,
)

__all__ = [
    "AnalyticsEventType",
    "AnalyticsRegistry",
    "RoutingAnalyticsEvent",
    "RoutingAnalyticsLogger",
    "create_routing_analytics_logger",
    "ClassificationResult",
    "ClassificationSignal",
    "classify",
    "IntelligentRouting",
    "IntelligentRoutingResult",
    "IntelligentRouter",
    "RoutingDecision",
    "apply_bias",
    "apply_budget_constraints",
    "record_routing_completion",
    "record_routing_fallback",
    "resolve_model_for_tier",
    "route_message",
    "TIER_ORDER",
    "TierDefinition",
    "clamp_tier",
    "default_model_for",
    "get_tier_definition",
    "minimum_tier",
]
