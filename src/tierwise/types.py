"""Shared value types for routing.

Kept free of any other tierwise import so that both the config layer
and the routing pipeline can depend on it.
"""

from dataclasses import dataclass
from enum import Enum


# Terminal fallback when nothing else resolves a model
DEFAULT_PROVIDER = "anthropic"
DEFAULT_MODEL = "claude-sonnet-4-5"


class IntentComplexity(str, Enum):
    """How much model capability a message needs.

    Ordered by required capability, except EXPLICIT which is a bypass
    signal (the user named a model) rather than a capability level.
    """
    TRIVIAL = "trivial"
    SIMPLE = "simple"
    STANDARD = "standard"
    COMPLEX = "complex"
    FLAGSHIP = "flagship"
    EXPLICIT = "explicit"


class ModelTierId(str, Enum):
    """Capability tiers, T0 (no model) through T4 (best cloud model)."""
    T0 = "t0"
    T1 = "t1"
    T2 = "t2"
    T3 = "t3"
    T4 = "t4"


class RoutingBias(str, Enum):
    """Preference nudging tier selection by at most one step."""
    COST = "cost"
    BALANCED = "balanced"
    QUALITY = "quality"


@dataclass(frozen=True)
class ModelRef:
    """A concrete backend model: provider plus model identifier."""
    provider: str
    model: str

    @classmethod
    def parse(
        cls,
        raw: str | None,
        default_provider: str = DEFAULT_PROVIDER,
    ) -> "ModelRef | None":
        """Parse a "provider/model" string.

        Splits on the first "/" only, so identifiers such as
        "openrouter/meta-llama/llama-3-70b" keep their inner slashes.
        A string without a separator is taken as a model of the
        default provider.

        Returns:
            The parsed ref, or None when the string is empty or one of
            its halves is empty.
        """
        if not isinstance(raw, str):
            return None
        trimmed = raw.strip()
        if not trimmed:
            return None

        if "/" not in trimmed:
            return cls(provider=default_provider, model=trimmed)

        provider, model = trimmed.split("/", 1)
        provider = provider.strip().lower()
        model = model.strip()
        if not provider or not model:
            return None
        return cls(provider=provider, model=model)

    def __str__(self) -> str:
        return f"{self.provider}/{self.model}"
