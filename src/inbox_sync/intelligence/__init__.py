"""Classification capability for inbound messages."""

from .category import KeywordClassifier, LLMClassifier, build_classifier
from .llm import LLMClient, LLMError, OllamaClient

__all__ = [
    "KeywordClassifier",
    "LLMClassifier",
    "LLMClient",
    "LLMError",
    "OllamaClient",
    "build_classifier",
]
