"""
Classification Chain
====================

Deterministic, offline-first category assignment.

Rules are tried in a fixed order and the first match wins:
taxonomy, AI classifier, keyword table, invoice pattern,
extension map, then the ``unsorted`` fallback.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Protocol

from hotsort.config.categories import (
    EXTENSION_MAP,
    FALLBACK_CATEGORY,
    INVOICE_PATTERN,
    KEYWORD_MAP,
    normalize_extension,
)
from hotsort.utils.logging_config import get_logger

logger = get_logger(__name__)


class AIClassifier(Protocol):
    """Anything that turns a filename stem into a category label."""

    def classify(self, text: str) -> str:
        ...


@dataclass
class ClassificationResult:
    """Result of running the classification chain.

    Attributes:
        category: Assigned category label.
        source: Rule that matched (taxonomy, ai, keyword, regex,
            extension or fallback).
        confidence: Confidence score (0.0 to 1.0) of that rule.
    """
    category: str
    source: str
    confidence: float

    @property
    def is_semantic(self) -> bool:
        """Whether the name itself, not just its extension, decided the label."""
        return self.source in Classifier.SEMANTIC_SOURCES


class Classifier:
    """Fixed-priority fallback chain.

    Never raises: a failing AI classifier is logged and skipped.
    """

    SOURCE_CONFIDENCE = {
        "taxonomy": 0.95,
        "ai": 0.85,
        "keyword": 0.8,
        "regex": 0.75,
        "extension": 0.6,
        "fallback": 0.3,
    }

    SEMANTIC_SOURCES = ("taxonomy", "ai", "keyword", "regex")

    def __init__(
        self,
        keyword_map: Optional[Mapping[str, List[str]]] = None,
        extension_map: Optional[Mapping[str, str]] = None,
    ):
        """Initialize the classifier.

        Args:
            keyword_map: Ordered category -> keywords table. Uses default if None.
            extension_map: Extension -> category table. Uses default if None.
        """
        self.keyword_map = keyword_map if keyword_map is not None else KEYWORD_MAP
        self.extension_map = {
            normalize_extension(ext): category
            for ext, category in (extension_map if extension_map is not None else EXTENSION_MAP).items()
        }

    def classify(
        self,
        filename: str,
        extension: Optional[str] = None,
        taxonomy: Optional[Iterable[str]] = None,
        ai_classifier: Optional[AIClassifier] = None,
    ) -> str:
        """Return the category label for a file."""
        return self.resolve(filename, extension, taxonomy, ai_classifier).category

    def resolve(
        self,
        filename: str,
        extension: Optional[str] = None,
        taxonomy: Optional[Iterable[str]] = None,
        ai_classifier: Optional[AIClassifier] = None,
    ) -> ClassificationResult:
        """Run the chain and report which rule matched.

        Args:
            filename: File name, with or without extension.
            extension: Extension with or without the dot. Derived from
                the filename when omitted.
            taxonomy: Preferred labels matched against the stem.
            ai_classifier: Optional AI classifier consulted after taxonomy.

        Returns:
            ClassificationResult for the first matching rule.
        """
        filename = filename or ""
        stem = Path(filename).stem if filename else ""
        stem_lower = stem.lower()
        ext = normalize_extension(extension if extension is not None else Path(filename).suffix)

        for tag in taxonomy or []:
            label = (tag or "").strip()
            if label and label.lower() in stem_lower:
                return self._result(label, "taxonomy")

        if ai_classifier is not None:
            label = self._ask_ai(ai_classifier, stem)
            if label:
                return self._result(label, "ai")

        for category, keywords in self.keyword_map.items():
            if any(keyword.lower() in stem_lower for keyword in keywords if keyword):
                return self._result(category, "keyword")

        if INVOICE_PATTERN.search(stem):
            return self._result("invoice", "regex")

        if ext in self.extension_map:
            return self._result(self.extension_map[ext], "extension")

        return self._result(FALLBACK_CATEGORY, "fallback")

    def _ask_ai(self, ai_classifier: AIClassifier, stem: str) -> str:
        try:
            label = (ai_classifier.classify(stem) or "").strip()
        except Exception as e:
            logger.warning(f"AI classifier failed for '{stem}': {e}")
            return ""
        if label.lower() == FALLBACK_CATEGORY:
            return ""
        return label

    def _result(self, category: str, source: str) -> ClassificationResult:
        logger.debug(f"Classified as '{category}' by {source} rule")
        return ClassificationResult(
            category=category,
            source=source,
            confidence=self.SOURCE_CONFIDENCE[source],
        )
