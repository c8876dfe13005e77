"""
LLM Classification
==================

Optional AI classifier backed by a local Ollama model.
It answers with a single category label, or an empty string when the
model cannot be reached or its reply is unusable.
"""

import re
from typing import Iterable, List, Optional

from hotsort.config.categories import FALLBACK_CATEGORY, KEYWORD_MAP
from hotsort.utils.exceptions import ClassificationError, ErrorCode
from hotsort.utils.logging_config import get_logger

logger = get_logger(__name__)

# Lazy import for ollama
ollama = None


def _import_ollama():
    """Lazy import ollama."""
    global ollama
    if ollama is None:
        try:
            import ollama as _ollama
            ollama = _ollama
        except ImportError:
            ollama = False
    return ollama


class PromptTemplates:
    """Prompt templates for label classification."""

    SYSTEM_PROMPT = """You are a file archivist.
Given a file name, answer with exactly one short category label.
Answer with the label only: no punctuation, quotes or explanation."""

    LABEL_PROMPT = """File name: {text}

Known categories: {categories}

Pick the best known category. If none fits, invent one short lowercase label.
If the name carries no meaning at all, answer: {fallback}"""


class OllamaClassifier:
    """Ask a local Ollama model for a category label.

    Satisfies the ``AIClassifier`` protocol used by the classification chain.
    """

    MAX_LABEL_LENGTH = 40

    def __init__(
        self,
        model: str = "llama3",
        categories: Optional[Iterable[str]] = None,
        temperature: float = 0.0,
        max_text_length: int = 200,
    ):
        """Initialize the LLM classifier.

        Args:
            model: Ollama model name.
            categories: Labels offered to the model. Uses the keyword table if None.
            temperature: LLM temperature (lower = more deterministic).
            max_text_length: Maximum text length to send to the model.
        """
        self.model = model
        self.categories: List[str] = list(categories) if categories else list(KEYWORD_MAP)
        self.temperature = temperature
        self.max_text_length = max_text_length
        self.templates = PromptTemplates()

    def is_available(self) -> bool:
        """Check if Ollama is running and the model is pulled."""
        client = _import_ollama()
        if not client:
            return False

        try:
            models = client.list()
            names = [m.get("name", "") or m.get("model", "") for m in models.get("models", [])]
            return any(self.model in name or name.startswith(self.model) for name in names)
        except Exception as e:
            logger.debug(f"Ollama not available: {e}")
            return False

    def classify(self, text: str) -> str:
        """Classify a filename stem.

        Args:
            text: Filename stem (or other short text).

        Returns:
            Category label, or "" if the model gave no usable answer.
        """
        try:
            return self.label(text)
        except ClassificationError as e:
            logger.warning(f"LLM classification failed: {e}")
            return ""

    def label(self, text: str) -> str:
        """Ask the model for a label.

        Raises:
            ClassificationError: If the client is missing, the call fails,
                or the reply holds no usable label.
        """
        client = _import_ollama()
        if not client:
            raise ClassificationError(
                "ollama package is not installed", error_code=ErrorCode.LLM_UNAVAILABLE
            )

        prompt = self.templates.LABEL_PROMPT.format(
            text=(text or "")[:self.max_text_length],
            categories=", ".join(self.categories),
            fallback=FALLBACK_CATEGORY,
        )

        try:
            response = client.chat(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.templates.SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                options={"temperature": self.temperature, "num_predict": 16},
            )
            content = response["message"]["content"]
        except Exception as e:
            raise ClassificationError(
                f"{self.model} did not answer", filename=text,
                error_code=ErrorCode.LLM_UNAVAILABLE, cause=e,
            ) from e

        label = self._parse_label(content)
        if not label:
            raise ClassificationError(f"Unusable reply: {(content or '')[:80]!r}", filename=text)
        return label

    def _parse_label(self, content: str) -> str:
        """Reduce a model reply to a single clean label."""
        lines = [line.strip() for line in (content or "").splitlines() if line.strip()]
        if not lines:
            return ""
        label = re.sub(r"^(category|label)\s*:\s*", "", lines[0], flags=re.IGNORECASE)
        label = label.strip(" \t\"'`.,;:*")
        if not label or len(label) > self.MAX_LABEL_LENGTH:
            return ""
        return label
