"""Mock LLM provider that echoes prompts for deterministic testing."""
from __future__ import annotations

from typing import List

from .base import CompletionProvider


class MockLLMProvider(CompletionProvider):
    """Return a deterministic response for any prompt."""

    name = "mock"

    def __init__(self) -> None:
        self.prompts: List[str] = []

    def generate(self, prompt: str) -> str:
        """Generate a canned response with a predictable prefix."""

        self.prompts.append(prompt)
        return f"MOCK_ANSWER: {prompt[:100]}"
