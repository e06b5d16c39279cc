"""Intent classification for smart routing.

Decides how much model capability a message needs. This is all done
locally with regex/heuristics - no LLM calls for routing decisions.

Classification is an ordered list of stages. Each stage holds named
rules (a regex pattern or a heuristic over message features) and a
decision function. Stages run in order and the first one that reaches
a verdict wins:

    1. empty        - empty/whitespace message         -> trivial
    2. explicit     - "/model opus", "use sonnet"      -> explicit
    3. trivial      - greetings, acks, emoji, yes/no   -> trivial
    4. very_short   - under 10 chars, no "?"           -> trivial
    5. flagship     - mock interview, deep dive, RFC   -> flagship
    6. complex      - weighted keywords + length/code  -> complex
    7. simple       - "what is X", time/date, reminders -> simple
    8. short        - <= 15 words, little complexity   -> simple
    (fallthrough)                                      -> standard

Every rule that gets evaluated is recorded as a signal, so the trace
shows exactly how far the cascade went.
"""

import logging
import re
import unicodedata
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from tierwise.types import IntentComplexity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationSignal:
    """One piece of evidence considered by the classifier."""
    name: str
    weight: float
    matched: bool


@dataclass(frozen=True)
class ClassificationResult:
    """Result of classifying a message."""
    intent: IntentComplexity
    confidence: float  # 0.0 to 1.0
    reason: str
    signals: tuple[ClassificationSignal, ...] = field(default_factory=tuple)

    @property
    def matched_signals(self) -> list[ClassificationSignal]:
        return [s for s in self.signals if s.matched]


class RuleKind(str, Enum):
    PATTERN = "pattern"
    HEURISTIC = "heuristic"


class StageMode(str, Enum):
    FIRST_MATCH = "first_match"  # stop at the first matching rule
    ACCUMULATE = "accumulate"    # evaluate every rule and sum weights


@dataclass(frozen=True)
class MessageFeatures:
    """Cheap features computed once per message."""
    text: str
    word_count: int
    question_marks: int

    @classmethod
    def from_text(cls, text: str) -> "MessageFeatures":
        return cls(
            text=text,
            word_count=len(text.split()),
            question_marks=text.count("?"),
        )


# Rule tests see the message features and the scores of earlier stages
RuleTest = Callable[[MessageFeatures, Mapping[str, float]], bool]


@dataclass(frozen=True)
class Rule:
    """A named, weighted check."""
    name: str
    kind: RuleKind
    test: RuleTest
    weight: float


@dataclass(frozen=True)
class Verdict:
    intent: IntentComplexity
    confidence: float
    reason: str


@dataclass(frozen=True)
class Stage:
    """An ordered group of rules plus the decision drawn from their score."""
    name: str
    mode: StageMode
    rules: tuple[Rule, ...]
    decide: Callable[[float], Verdict | None]


def pattern_rule(name: str, pattern: str, weight: float, flags: int = re.IGNORECASE) -> Rule:
    """Rule that matches a regex anywhere in the message."""
    compiled = re.compile(pattern, flags)
    return Rule(
        name=name,
        kind=RuleKind.PATTERN,
        test=lambda f, _scores: compiled.search(f.text) is not None,
        weight=weight,
    )


def heuristic_rule(name: str, test: RuleTest, weight: float) -> Rule:
    return Rule(name=name, kind=RuleKind.HEURISTIC, test=test, weight=weight)


# ── Heuristics ─────────────────────────────────────────

_EMOJI_RANGES = (
    (0x1F000, 0x1FAFF),  # emoticons, pictographs, transport, flags
    (0x2300, 0x23FF),    # misc technical (watch, hourglass)
    (0x2600, 0x27BF),    # misc symbols, dingbats
    (0x2B00, 0x2BFF),    # arrows, stars
    (0xE0000, 0xE007F),  # tag sequences
)
# Joiners, variation selectors and keycap combiner
_EMOJI_COMBINING = {0x200D, 0xFE0E, 0xFE0F, 0x20E3}


def is_emoji_only(text: str) -> bool:
    """True if the text holds at least one emoji and nothing but emoji/space."""
    seen = False
    for ch in text:
        if ch.isspace():
            continue
        cp = ord(ch)
        if cp in _EMOJI_COMBINING:
            continue
        if unicodedata.category(ch) == "So" or any(lo <= cp <= hi for lo, hi in _EMOJI_RANGES):
            seen = True
            continue
        return False
    return seen


_CODE_FENCE = re.compile(r"```")
_NUMBERED_LIST = re.compile(r"^\s*\d+[.)]\s", re.MULTILINE)


# ── Stages ─────────────────────────────────────────────

def _fixed(intent: IntentComplexity, confidence: float, reason: str) -> Callable[[float], Verdict | None]:
    """Decision for first-match stages: any match gives a fixed verdict."""
    def decide(score: float) -> Verdict | None:
        return Verdict(intent, confidence, reason) if score > 0 else None
    return decide


def _flagship(score: float) -> Verdict | None:
    if score < 0.4:
        return None
    return Verdict(IntentComplexity.FLAGSHIP, min(0.95, 0.6 + score), "flagship keyword match")


def _complex(score: float) -> Verdict | None:
    if score < 0.5:
        return None
    return Verdict(IntentComplexity.COMPLEX, min(0.9, 0.5 + score * 0.4), "complex signal accumulation")


EMPTY_STAGE = Stage(
    name="empty",
    mode=StageMode.FIRST_MATCH,
    rules=(
        heuristic_rule("empty_message", lambda f, _s: not f.text, 1.0),
    ),
    decide=_fixed(IntentComplexity.TRIVIAL, 1.0, "empty message"),
)

EXPLICIT_STAGE = Stage(
    name="explicit",
    mode=StageMode.FIRST_MATCH,
    rules=(
        pattern_rule("explicit:model_command", r"^/model\s+(opus|sonnet|haiku|gpt|gemini|qwen|llama)", 1.0),
        pattern_rule("explicit:use_model", r"\buse\s+(opus|sonnet|gpt-?4|claude)\b", 1.0),
        pattern_rule("explicit:switch_model", r"\bswitch\s+to\s+(opus|sonnet|haiku)\b", 1.0),
    ),
    decide=_fixed(IntentComplexity.EXPLICIT, 1.0, "explicit model request"),
)

TRIVIAL_STAGE = Stage(
    name="trivial",
    mode=StageMode.FIRST_MATCH,
    rules=(
        pattern_rule(
            "trivial:greeting_or_ack",
            r"^(hi|hey|hello|yo|sup|gm|gn|morning|night|thanks|thx|ty|ok|okay|k|yep|yup|"
            r"nah|nope|lol|haha|lmao|brb|gtg|bye|cya)\s*[.!?]*$",
            1.0,
        ),
        heuristic_rule("trivial:emoji_only", lambda f, _s: is_emoji_only(f.text), 1.0),
        pattern_rule("trivial:yes_no", r"^(yes|no|y|n|sure|nah)\s*[.!?]*$", 1.0),
    ),
    decide=_fixed(IntentComplexity.TRIVIAL, 0.95, "trivial pattern match"),
)

VERY_SHORT_STAGE = Stage(
    name="very_short",
    mode=StageMode.FIRST_MATCH,
    rules=(
        heuristic_rule("very_short", lambda f, _s: len(f.text) < 10 and f.question_marks == 0, 0.8),
    ),
    decide=_fixed(IntentComplexity.TRIVIAL, 0.8, "very short non-question"),
)

FLAGSHIP_STAGE = Stage(
    name="flagship",
    mode=StageMode.ACCUMULATE,
    rules=(
        pattern_rule("flagship:mock_interview", r"\bmock\s+interview\b", 0.4),
        pattern_rule("flagship:full_system_design", r"\bfull\s+system\s+design\b", 0.4),
        pattern_rule(
            "flagship:design_from_scratch",
            r"\bdesign\s+[^\n]{0,200}?\s+from\s+scratch\b",
            0.4,
        ),
        pattern_rule("flagship:architecture_review", r"\barchitect(?:ure)?\s+review\b", 0.4),
        pattern_rule("flagship:deep_dive", r"\bdeep\s+dive\b", 0.4),
        pattern_rule("flagship:comprehensive_analysis", r"\bcomprehensive\s+analysis\b", 0.4),
        pattern_rule(
            "flagship:full_implementation",
            r"\bwrite\s+a\s+(?:full|complete)\s+(?:implementation|solution)\b",
            0.4,
        ),
        pattern_rule(
            "flagship:explain_in_depth",
            r"\bexplain\s+[^\n]{0,200}?\s+in\s+depth\b",
            0.4,
        ),
        pattern_rule("flagship:paper_review", r"\bpaper\s+review\b", 0.4),
        pattern_rule("flagship:rfc", r"\bRFC\b", 0.4),
    ),
    decide=_flagship,
)

COMPLEX_STAGE = Stage(
    name="complex",
    mode=StageMode.ACCUMULATE,
    rules=(
        pattern_rule("complex:system_design", r"\bsystem\s+design\b", 0.25),
        pattern_rule("complex:code_review", r"\bcode\s+review\b", 0.25),
        pattern_rule("complex:refactor", r"\brefactor\b", 0.25),
        pattern_rule("complex:debug", r"\bdebug\b", 0.25),
        pattern_rule("complex:implement", r"\bimplement\b", 0.25),
        pattern_rule("complex:optimize", r"\boptimize\b", 0.25),
        pattern_rule("complex:trade_offs", r"\btrade-?offs?\b", 0.25),
        pattern_rule("complex:compare_contrast", r"\bcompare\s+(?:and\s+)?contrast\b", 0.25),
        pattern_rule("complex:pros_cons", r"\bpros?\s+(?:and\s+)?cons?\b", 0.25),
        pattern_rule("complex:step_by_step", r"\bstep\s+by\s+step\b", 0.25),
        pattern_rule("complex:explain_how_why", r"\bexplain\s+(?:how|why|when)\b", 0.25),
        pattern_rule("complex:what_would_happen", r"\bwhat\s+(?:would|should)\s+happen\s+if\b", 0.25),
        pattern_rule("complex:long_code_block", r"```[\s\S]{50,}```", 0.25),
        pattern_rule(
            "complex:ml_jargon",
            r"\b(?:transformer|attention|backprop|gradient|loss\s+function|regularization)\b",
            0.25,
        ),
        pattern_rule(
            "complex:infra_jargon",
            r"\b(?:kubernetes|docker|microservice|distributed|consensus|CAP\s+theorem)\b",
            0.25,
        ),
        heuristic_rule("long_message", lambda f, _s: f.word_count > 100, 0.3),
        heuristic_rule("medium_message", lambda f, _s: 50 < f.word_count <= 100, 0.15),
        heuristic_rule("code_block", lambda f, _s: _CODE_FENCE.search(f.text) is not None, 0.3),
        heuristic_rule("multiple_questions", lambda f, _s: f.question_marks >= 2, 0.2),
        heuristic_rule("numbered_list", lambda f, _s: _NUMBERED_LIST.search(f.text) is not None, 0.15),
    ),
    decide=_complex,
)

SIMPLE_STAGE = Stage(
    name="simple",
    mode=StageMode.FIRST_MATCH,
    rules=(
        pattern_rule("simple:what_is", r"^what\s+(?:is|are|was|were)\s+\w+\s*\??$", 0.7),
        pattern_rule("simple:define", r"^(?:define|definition\s+of)\s+\w+\s*\??$", 0.7),
        pattern_rule("simple:how_does_work", r"^how\s+(?:do|does)\s+\w+\s+work\s*\??$", 0.7),
        pattern_rule("simple:what_time", r"^what\s+time\b", 0.7),
        pattern_rule("simple:what_day", r"^what\s+day\b", 0.7),
        pattern_rule("simple:when_is", r"^when\s+is\b", 0.7),
        pattern_rule("simple:reminder", r"^(?:remind|reminder)\b", 0.7),
        pattern_rule("simple:translate_convert", r"^(?:translate|convert)\s+", 0.7),
    ),
    decide=_fixed(IntentComplexity.SIMPLE, 0.8, "simple pattern match"),
)

SHORT_STAGE = Stage(
    name="short",
    mode=StageMode.FIRST_MATCH,
    rules=(
        heuristic_rule(
            "short_no_complexity",
            lambda f, scores: f.word_count <= 15 and scores.get("complex", 0.0) < 0.25,
            0.6,
        ),
    ),
    decide=_fixed(IntentComplexity.SIMPLE, 0.7, "short message without complexity"),
)

STAGES: tuple[Stage, ...] = (
    EMPTY_STAGE,
    EXPLICIT_STAGE,
    TRIVIAL_STAGE,
    VERY_SHORT_STAGE,
    FLAGSHIP_STAGE,
    COMPLEX_STAGE,
    SIMPLE_STAGE,
    SHORT_STAGE,
)

DEFAULT_VERDICT = Verdict(
    IntentComplexity.STANDARD, 0.6, "no strong signal - default to standard",
)


# ── Classifier ─────────────────────────────────────────

def _run_stage(
    stage: Stage,
    features: MessageFeatures,
    scores: Mapping[str, float],
    signals: list[ClassificationSignal],
) -> float:
    """Evaluate a stage's rules, appending a signal per rule evaluated."""
    score = 0.0
    for rule in stage.rules:
        matched = bool(rule.test(features, scores))
        signals.append(ClassificationSignal(rule.name, rule.weight, matched))
        if matched:
            score += rule.weight
            if stage.mode == StageMode.FIRST_MATCH:
                break
    # Keep threshold comparisons exact (0.15 + 0.2 + 0.15 == 0.5)
    return round(score, 6)


def classify(message: str, stages: tuple[Stage, ...] = STAGES) -> ClassificationResult:
    """Classify a message into an intent complexity level.

    Never raises. If a rule blows up on pathological input the result
    degrades to STANDARD.

    Args:
        message: The inbound user message.
        stages: Stage pipeline (override for experiments/tests).

    Returns:
        ClassificationResult with intent, confidence, reason and the
        signal trace.
    """
    text = message.strip() if isinstance(message, str) else ""
    features = MessageFeatures.from_text(text)
    signals: list[ClassificationSignal] = []
    scores: dict[str, float] = {}

    try:
        verdict = DEFAULT_VERDICT
        for stage in stages:
            scores[stage.name] = _run_stage(stage, features, scores, signals)
            decided = stage.decide(scores[stage.name])
            if decided is not None:
                verdict = decided
                break
    except Exception as e:
        logger.warning(f"Intent classification failed, defaulting to standard: {e}")
        verdict = Verdict(IntentComplexity.STANDARD, 0.6, "classifier error - default to standard")

    return ClassificationResult(
        intent=verdict.intent,
        confidence=min(1.0, max(0.0, verdict.confidence)),
        reason=verdict.reason or DEFAULT_VERDICT.reason,
        signals=tuple(signals),
    )
