"""Intent classifier backed by the Anthropic Messages API.

The raw model answer is parsed exactly once, here, into a tagged result:
Clarification when the answer starts with the clarification marker,
Instruction otherwise. Callers branch on the type, never on the text.

Error handling strategy:
- Transient errors (429, 5xx, network): handled by the Anthropic SDK (max_retries=3)
- Anything the SDK gives up on, or an empty answer: ClassificationError

Usage:
    import anthropic
    from mailtriage.classifier.intent import Clarification, IntentClassifier

    classifier = IntentClassifier(anthropic.AsyncAnthropic(max_retries=3), config)
    result = await classifier.classify(email.body)
    if isinstance(result, Clarification):
        ...
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import anthropic

from mailtriage.classifier.prompts import CLARIFICATION_MARKER, SYSTEM_PROMPT, build_user_message
from mailtriage.core.errors import ClassificationError
from mailtriage.core.logging import get_logger

if TYPE_CHECKING:
    from mailtriage.config_schema import AppConfig

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Clarification:
    """The model needs more information. `text` includes the marker."""

    text: str


@dataclass(frozen=True, slots=True)
class Instruction:
    """The model understood the request. `text` is its restatement."""

    text: str


Interpretation = Clarification | Instruction


def parse_interpretation(text: str) -> Interpretation:
    """Turn a raw model answer into a Clarification or an Instruction."""
    if text.startswith(CLARIFICATION_MARKER):
        return Clarification(text)
    return Instruction(text)


class IntentClassifier:
    """Classifies an email body as a clarification request or an instruction.

    Attributes:
        _client: Async Anthropic client (configured with max_retries=3)
        _config: Application configuration (model, temperature, max_tokens)
    """

    def __init__(self, anthropic_client: anthropic.AsyncAnthropic, config: AppConfig):
        self._client = anthropic_client
        self._config = config

    def update_config(self, config: AppConfig) -> None:
        """Swap in a reloaded configuration."""
        self._config = config

    async def classify(self, body: str, email_id: str | None = None) -> Interpretation:
        """Classify an email body.

        Args:
            body: Decoded email body text
            email_id: Message ID, for logging only

        Returns:
            Clarification or Instruction

        Raises:
            ClassificationError: If the API call fails or the answer is empty
        """
        text = await self.complete(body, email_id=email_id)
        return parse_interpretation(text)

    async def complete(self, body: str, email_id: str | None = None) -> str:
        """Return the model's answer for an email body, unmodified.

        The marker check and the reply body both use this exact text, so
        leading whitespace before "Clarify:" makes an instruction.
        """
        models = self._config.models
        start_time = time.monotonic()

        try:
            response = await self._client.messages.create(
                model=models.triage,
                max_tokens=models.max_tokens,
                temperature=models.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": build_user_message(body)}],
            )
        except anthropic.APIStatusError as e:
            logger.error(
                "classification_api_error",
                email_id=email_id,
                status_code=e.status_code,
                error=str(e),
            )
            raise ClassificationError(
                f"Classification API error {e.status_code}: {e.message}", email_id=email_id
            ) from e
        except anthropic.APIError as e:
            # Connection and timeout errors, after SDK retries
            logger.error("classification_connection_error", email_id=email_id, error=str(e))
            raise ClassificationError(
                f"Classification request failed: {e}", email_id=email_id
            ) from e

        text = "".join(block.text for block in response.content if block.type == "text")

        logger.debug(
            "classification_complete",
            email_id=email_id,
            model=models.triage,
            duration_ms=int((time.monotonic() - start_time) * 1000),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

        if not text.strip():
            raise ClassificationError(
                f"Classifier returned no text (stop_reason={response.stop_reason})",
                email_id=email_id,
            )
        return text
