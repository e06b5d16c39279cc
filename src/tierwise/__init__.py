"""Tierwise - intent-aware model routing for conversational agents.

Modules:
    - types: Shared enums (intent, tier, bias) and model references
    - config: Pydantic config models and YAML loading
    - routing: Intent classifier, tier registry, router, analytics
    - context_engine: Tier-aware system prompt adaptation
"""

__version__ = "0.1.0"
