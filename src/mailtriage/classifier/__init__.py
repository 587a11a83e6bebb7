"""Email intent classification.

This package provides:
- The Anthropic-backed intent classifier
- The tagged classification result (Clarification | Instruction)
- Prompt text and the clarification marker
"""

from mailtriage.classifier.intent import (
    Clarification,
    Instruction,
    IntentClassifier,
    Interpretation,
    parse_interpretation,
)
from mailtriage.classifier.prompts import CLARIFICATION_MARKER

__all__ = [
    "CLARIFICATION_MARKER",
    "Clarification",
    "Instruction",
    "IntentClassifier",
    "Interpretation",
    "parse_interpretation",
]
