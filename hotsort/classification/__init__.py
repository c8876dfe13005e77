"""Classification module for file categorization."""

from .classifier import Classifier, ClassificationResult, AIClassifier
from .llm import OllamaClassifier

__all__ = [
    "Classifier",
    "ClassificationResult",
    "AIClassifier",
    "OllamaClassifier",
]
