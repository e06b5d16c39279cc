"""Integration hook between the router and the host agent loop.

Called early in an agent turn, before the model is invoked:

1. Check the feature flag (intelligent_routing.enabled, default off)
2. If enabled, route the message
3. Hand back the decision; the caller may use or ignore it

When the flag is off, resolve() returns None and the host's normal
model selection runs untouched.

The host owns one IntelligentRouting per config and closes it on
shutdown, which drains pending analytics writes.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from tierwise.config import AgentConfig, IntelligentRoutingConfig
from tierwise.routing.analytics import (
    AnalyticsRegistry,
    RoutingAnalyticsLogger,
    create_routing_analytics_logger,
)
from tierwise.routing.router import (
    RoutingDecision,
    record_routing_completion,
    record_routing_fallback,
    route_message,
)
from tierwise.types import ModelRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntelligentRoutingResult:
    """What the host needs from one routing pass."""
    decision: RoutingDecision
    use_adapted_prompt: bool
    analytics: RoutingAnalyticsLogger | None


class IntelligentRouting:
    """Feature-flag gate and analytics owner for the router.

    Usage:
        with IntelligentRouting(load_config()) as routing:
            result = routing.resolve(message, system_prompt, session_id="abc")
            if result:
                model = result.decision.model
                ...
                routing.record_completion(result.decision, latency_ms=950.0)
    """

    def __init__(
        self,
        cfg: AgentConfig,
        env: Mapping[str, str] | None = None,
        registry: AnalyticsRegistry | None = None,
    ):
        self.cfg = cfg
        self.env = env
        self._owns_registry = registry is None
        self._registry = registry if registry is not None else AnalyticsRegistry()
        self._analytics: RoutingAnalyticsLogger | None = None
        self._analytics_resolved = False

    @property
    def routing_config(self) -> IntelligentRoutingConfig | None:
        return self.cfg.intelligent_routing

    @property
    def enabled(self) -> bool:
        return bool(self.routing_config and self.routing_config.enabled)

    @property
    def analytics(self) -> RoutingAnalyticsLogger | None:
        """The analytics logger, created on first use. None when disabled."""
        if not self._analytics_resolved:
            routing_config = self.routing_config
            self._analytics = create_routing_analytics_logger(
                enabled=bool(routing_config and routing_config.analytics),
                registry=self._registry,
                analytics_path=routing_config.analytics_path if routing_config else None,
                env=self.env,
            )
            self._analytics_resolved = True
        return self._analytics

    def resolve(
        self,
        message: str,
        system_prompt: str,
        session_model_override: ModelRef | None = None,
        channel: str | None = None,
        session_id: str | None = None,
    ) -> IntelligentRoutingResult | None:
        """Route a message if intelligent routing is enabled.

        Returns:
            None when the feature flag is off or the section is missing.
        """
        routing_config = self.routing_config
        if routing_config is None or not routing_config.enabled:
            return None

        analytics = self.analytics
        logger.debug(
            f"Intelligent routing enabled, classifying message "
            f"(length={len(message)}, channel={channel})"
        )

        decision = route_message(
            message,
            system_prompt,
            self.cfg,
            routing_config,
            session_model_override=session_model_override,
            channel=channel,
            session_id=session_id,
            analytics=analytics,
        )

        logger.info(
            f"Routing decision: intent={decision.classification.intent.value} "
            f"confidence={decision.classification.confidence:.2f} "
            f"tier={decision.tier.value} model={decision.model} "
            f"bypassed={decision.bypassed} prompt_adapted={decision.adapted_prompt.was_adapted}"
        )

        return IntelligentRoutingResult(
            decision=decision,
            use_adapted_prompt=decision.adapted_prompt.was_adapted,
            analytics=analytics,
        )

    def record_completion(
        self,
        decision: RoutingDecision,
        latency_ms: float,
        response_size: int | None = None,
    ) -> None:
        """Record the model call's latency. No-op when analytics is off."""
        record_routing_completion(self.analytics, decision, latency_ms, response_size, self.cfg)

    def record_fallback(self, decision: RoutingDecision, fallback_model: ModelRef, reason: str) -> None:
        record_routing_fallback(self.analytics, decision, fallback_model, reason, self.cfg)

    def close(self) -> None:
        """Drain analytics. Only closes the registry if this handle created it."""
        if self._owns_registry:
            self._registry.close()
        elif self._analytics is not None:
            self._analytics.flush(timeout=5.0)
        self._analytics = None
        self._analytics_resolved = False

    def __enter__(self) -> "IntelligentRouting":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
