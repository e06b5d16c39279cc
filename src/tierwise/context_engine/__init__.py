"""Context shaping for the selected model.

Tier-aware prompt adaptation: small local models get a trimmed system
prompt with explicit format constraints, flagship models get the full
prompt plus a reasoning preamble.
"""

from tierwise.context_engine.prompt_adapter import AdaptedPrompt, adapt_prompt_for_tier

__all__ = [
    "AdaptedPrompt",
    "adapt_prompt_for_tier",
]
