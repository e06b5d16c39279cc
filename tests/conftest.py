"""Shared fixtures for tierwise tests."""

import json
from pathlib import Path

import pytest

from tierwise.config import AgentConfig, IntelligentRoutingConfig, TierModelConfig
from tierwise.types import ModelTierId, RoutingBias


SAMPLE_SYSTEM_PROMPT = """# SOUL.md - Who You Are

## Core Truths
Be genuinely helpful, not performatively helpful.
Have opinions. Be resourceful before asking.

## MLE Interview Coach Role
Lin is preparing for a Google MLE interview.
Coaching style: Direct, no-BS, technically sharp.

## Tools
You have access to bash, file reading, web search.
Use tools when needed.

## Memory
You wake up fresh each session. These files are your continuity.
Don't ask permission. Just do it.

## Heartbeats
When you receive a heartbeat poll, check things proactively.

## Group Chats
In group chats, be smart about when to contribute.

## React Like a Human
On platforms that support reactions, use emoji reactions naturally.

## Vibe
Be the assistant you'd actually want to talk to."""


class RecordingSink:
    """In-memory analytics sink."""

    enabled = True

    def __init__(self):
        self.events = []

    def record(self, event):
        self.events.append(event)


@pytest.fixture
def sample_prompt() -> str:
    return SAMPLE_SYSTEM_PROMPT


@pytest.fixture
def routing_config() -> IntelligentRoutingConfig:
    """Routing config with every cloud/local tier pinned."""
    return IntelligentRoutingConfig(
        enabled=True,
        bias=RoutingBias.BALANCED,
        tiers={
            ModelTierId.T1: TierModelConfig(model="ollama/qwen2.5:7b", max_tokens=512),
            ModelTierId.T2: TierModelConfig(model="anthropic/claude-sonnet-4-5"),
            ModelTierId.T3: TierModelConfig(model="anthropic/claude-sonnet-4-5"),
            ModelTierId.T4: TierModelConfig(model="anthropic/claude-opus-4-5"),
        },
    )


@pytest.fixture
def agent_config(routing_config) -> AgentConfig:
    return AgentConfig(
        default_model="anthropic/claude-sonnet-4-5",
        intelligent_routing=routing_config,
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def state_env(tmp_path) -> dict[str, str]:
    """Environment pointing the state dir at a temp directory."""
    return {"TIERWISE_STATE_DIR": str(tmp_path / "state")}


def read_jsonl(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]
