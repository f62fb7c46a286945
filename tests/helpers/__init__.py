"""Test doubles for the chain, chat, LLM and key-value collaborators."""

from tests.helpers.fake_chain import STRANGER, WALLET_A, WALLET_B, FakeChain
from tests.helpers.fake_llm import (
    FakeLLM,
    multi_tool_response,
    text_response,
    tool_response,
)
from tests.helpers.memory_kv import InMemoryKeyValueStore
from tests.helpers.recording_chat import RecordingChat

__all__ = [
    "FakeChain",
    "FakeLLM",
    "InMemoryKeyValueStore",
    "RecordingChat",
    "STRANGER",
    "WALLET_A",
    "WALLET_B",
    "multi_tool_response",
    "text_response",
    "tool_response",
]
