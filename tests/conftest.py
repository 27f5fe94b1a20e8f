"""Pytest configuration and shared fixtures."""

import os
import json
from typing import List, Sequence
from unittest.mock import Mock, patch

import pytest


class WordEncoding:
    """Whitespace tokenizer standing in for tiktoken: one word, one token."""

    def __init__(self):
        self.vocab: List[str] = []
        self.ids = {}

    def encode(self, text: str) -> List[int]:
        tokens = []
        for word in text.split():
            if word not in self.ids:
                self.ids[word] = len(self.vocab)
                self.vocab.append(word)
            tokens.append(self.ids[word])
        return tokens

    def decode(self, tokens: Sequence[int]) -> str:
        return " ".join(self.vocab[t] for t in tokens)


@pytest.fixture
def word_encoding() -> WordEncoding:
    return WordEncoding()


@pytest.fixture(autouse=True)
def isolated_environment():
    """Keep environment changes made by a test out of the next one."""
    with patch.dict(os.environ):
        yield


def make_chat_client(*payloads) -> Mock:
    """OpenAI client mock whose chat completions return the given JSON payloads in order."""
    client = Mock()
    client.chat.completions.create.side_effect = [
        Mock(choices=[Mock(message=Mock(content=json.dumps(payload)))])
        for payload in payloads
    ]
    return client


@pytest.fixture
def chat_client():
    """Factory for OpenAI client mocks answering with JSON payloads."""
    return make_chat_client


@pytest.fixture
def quality_payload() -> dict:
    return {
        "should_include": True,
        "confidence_score": 0.85,
        "reasoning": "Specific, research-backed bedtime routine for ADHD.",
        "quality_issues": [],
        "valuable_insights": ["Visual schedules reduce bedtime conflict"],
        "contradictions": [],
        "recommended_tags": ["sleep", "routines"],
        "age_relevance": ["primary", "all"],
        "diagnosis_relevance": ["ADHD"],
        "content_type": "practical_tips"
    }
