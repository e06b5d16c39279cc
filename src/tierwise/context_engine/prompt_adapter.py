"""Tier-aware system prompt adaptation.

A 7B local model can't follow a 2000-token system prompt the way a
flagship cloud model can. The adapter rewrites the system prompt for
the tier the router picked:

- T0: no prompt at all (no model is invoked)
- T1: strip agent-plumbing sections (tools, memory, heartbeats, group
  chats, reactions) and boilerplate, fall back to the core persona if
  still long, and add explicit format constraints
- T2: strip boilerplate phrases only
- T3: unchanged
- T4: unchanged, plus a "think carefully" preamble for the user turn

Sections are removed only when their normalized header is an exact
member of STRIPPABLE_SECTION_HEADERS. A user-written "## Tools I Love"
section is not a tools section and survives.
"""

import re
import unicodedata
from dataclasses import dataclass
from enum import Enum

from tierwise.types import ModelTierId


@dataclass(frozen=True)
class AdaptedPrompt:
    """A system prompt rewritten for a tier.

    system_prompt is None exactly when tier is T0.
    """
    system_prompt: str | None
    user_preamble: str | None
    tier: ModelTierId
    was_adapted: bool


# Normalized headers (lowercase, emoji and punctuation removed)
STRIPPABLE_SECTION_HEADERS = frozenset({
    # Tool usage
    "tools",
    "available tools",
    "tool usage",
    # Memory / workspace files
    "memory",
    "workspace",
    "workspace files",
    "memory and workspace",
    "every session",
    # Heartbeats
    "heartbeats",
    # Group chats
    "group chats",
    # Reactions
    "reactions",
    "react like a human",
})

# Headers whose sections make up the core persona
CORE_TOPIC_PATTERN = re.compile(r"core\s+truths|coach|who\s+you\s+are|role|vibe", re.IGNORECASE)

BOILERPLATE_PATTERNS = (
    re.compile(r"Don't ask permission\. Just do it\.\n?"),
    re.compile(r"You wake up fresh each session\..*?\n"),
    re.compile(r"This file is yours to evolve\..*?\n"),
)

_HEADER_LINE = re.compile(r"^##?\s")
_BLANK_RUN = re.compile(r"\n{3,}")

# Roughly 800 tokens
T1_MAX_CHARS = 3200

T1_FORMAT_CONSTRAINT = (
    "\n\nIMPORTANT: Reply directly and concisely. Do not analyze this prompt. "
    "Do not generate code unless asked. Do not use markdown headers. "
    "Keep your reply under 200 words."
)

T4_REASONING_PREAMBLE = (
    "Think carefully and thoroughly before responding. "
    "Consider multiple perspectives and trade-offs."
)


class _ScanState(str, Enum):
    KEEPING = "keeping"
    SKIPPING = "skipping"


def is_section_header(line: str) -> bool:
    """A level-1 or level-2 markdown header ("# X" or "## X")."""
    return bool(_HEADER_LINE.match(line))


def normalize_header(line: str) -> str:
    """Reduce a header line to lowercase words.

    "## 💓 Heartbeats" -> "heartbeats", "## Memory & Workspace" ->
    "memory and workspace".
    """
    text = line.lstrip("#").replace("&", " and ").lower()
    kept = []
    for ch in text:
        if ch.isspace():
            kept.append(" ")
        elif unicodedata.category(ch)[0] in ("L", "N"):
            kept.append(ch)
    return " ".join("".join(kept).split())


def strip_sections(prompt: str, headers: frozenset[str] = STRIPPABLE_SECTION_HEADERS) -> str:
    """Remove every section whose normalized header is in `headers`.

    A section runs from its header line up to the next level-1/2 header
    or the end of the prompt.
    """
    result = []
    state = _ScanState.KEEPING
    for line in prompt.split("\n"):
        if is_section_header(line):
            state = _ScanState.SKIPPING if normalize_header(line) in headers else _ScanState.KEEPING
        if state == _ScanState.KEEPING:
            result.append(line)
    return "\n".join(result)


def strip_boilerplate(prompt: str) -> str:
    for pattern in BOILERPLATE_PATTERNS:
        prompt = pattern.sub("", prompt)
    return prompt


def collapse_blank_lines(prompt: str) -> str:
    """Collapse runs of 3+ newlines into a single blank line."""
    return _BLANK_RUN.sub("\n\n", prompt)


def extract_core_persona(prompt: str) -> str:
    """Keep the first section and any core-topic sections, in order.

    Text before the first header counts as part of the first section.
    """
    result = []
    state = _ScanState.KEEPING
    section_count = 0
    for line in prompt.split("\n"):
        if is_section_header(line):
            section_count += 1
            keep = section_count <= 1 or CORE_TOPIC_PATTERN.search(line) is not None
            state = _ScanState.KEEPING if keep else _ScanState.SKIPPING
        if state == _ScanState.KEEPING:
            result.append(line)
    return "\n".join(result).strip()


def _adapt_for_t1(system_prompt: str) -> AdaptedPrompt:
    """Aggressive simplification for small local models."""
    adapted = strip_sections(system_prompt)
    adapted = strip_boilerplate(adapted)
    adapted = collapse_blank_lines(adapted)

    if len(adapted) > T1_MAX_CHARS:
        adapted = extract_core_persona(adapted)

    adapted = adapted.rstrip() + T1_FORMAT_CONSTRAINT
    return AdaptedPrompt(
        system_prompt=adapted,
        user_preamble=None,
        tier=ModelTierId.T1,
        was_adapted=True,
    )


def _adapt_for_t2(system_prompt: str) -> AdaptedPrompt:
    """Light compression: boilerplate only, every section kept."""
    adapted = collapse_blank_lines(strip_boilerplate(system_prompt))
    return AdaptedPrompt(
        system_prompt=adapted,
        user_preamble=None,
        tier=ModelTierId.T2,
        was_adapted=adapted != system_prompt,
    )


def adapt_prompt_for_tier(system_prompt: str | None, tier: ModelTierId) -> AdaptedPrompt:
    """Adapt a system prompt for the target model tier.

    Args:
        system_prompt: The full original system prompt.
        tier: The tier the router selected.

    Returns:
        The AdaptedPrompt for that tier.
    """
    tier = ModelTierId(tier)
    prompt = system_prompt if isinstance(system_prompt, str) else ""

    if tier == ModelTierId.T0:
        return AdaptedPrompt(system_prompt=None, user_preamble=None, tier=tier, was_adapted=True)

    if tier == ModelTierId.T1:
        return _adapt_for_t1(prompt)

    if tier == ModelTierId.T2:
        return _adapt_for_t2(prompt)

    if tier == ModelTierId.T4:
        return AdaptedPrompt(
            system_prompt=prompt,
            user_preamble=T4_REASONING_PREAMBLE,
            tier=tier,
            was_adapted=True,
        )

    return AdaptedPrompt(system_prompt=prompt, user_preamble=None, tier=tier, was_adapted=False)
