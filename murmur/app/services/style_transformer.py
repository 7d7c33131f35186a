"""Style transformation of submitted messages.

Rewrites a message in a persona's voice through a text completion provider
so the submitter's writing style does not reach the recipient. Any failure
surfaces as a TransformationError; the original text is never returned in
place of a rewrite.
"""

import asyncio
import random
from typing import Optional

from murmur.app.core.logging import get_logger
from murmur.app.core.text_utils import exceeds_word_limit, truncate_to_words
from murmur.app.exceptions import ProviderError, TransformationError
from murmur.app.providers.base import BaseProvider
from murmur.app.services.personas import (
    CUSTOM_PERSONA_TEMPERATURE,
    PersonaSelector,
    get_persona,
    pick_random_persona,
)

logger = get_logger(__name__)

PROMPT_TEMPLATE = """You are a message transformation assistant. Your task is to rewrite the following message according to the specified style while preserving anonymity and maintaining the core meaning and intent.

Transformation Instructions: {directive}
{examples}
Important rules:
1. Preserve the core message and intent completely
2. Change the writing style according to the instructions
3. Do not add or remove significant information
4. Maintain the appropriate emotional tone (positive/negative/neutral)
5. Keep the message length reasonably similar
6. Output only the rewritten message with no additional text or commentary

Original message:
"{message}"

Rewrite the message according to the transformation instructions:"""

CUSTOM_DIRECTIVE_TEMPLATE = 'Write in the voice of this persona: "{guidance}". Apply the persona style consistently.'
EXAMPLE_TEMPLATE = 'Example:\nInput: "{source}"\nOutput: "{rewrite}"\n'


def classify_provider_error(error: ProviderError) -> str:
    """Map a provider failure onto a TransformationError code."""
    if error.status in (401, 403) or error.error_type == TransformationError.AUTHENTICATION:
        return TransformationError.AUTHENTICATION
    if error.status == 429 or error.error_type == TransformationError.RATE_LIMIT:
        return TransformationError.RATE_LIMIT
    if error.status is None and error.error_type == TransformationError.NETWORK:
        return TransformationError.NETWORK
    return TransformationError.API


class StyleTransformer:
    """Rewrites messages in a persona's style.

    Args:
        provider: Text completion provider
        max_words: Inputs above this many words are truncated before sending;
            outputs above it are truncated before returning
        timeout: Hard limit on one provider call, in seconds
        max_tokens: Output token budget per call
        custom_max_length: Longest accepted custom persona guidance
    """

    def __init__(
        self,
        provider: BaseProvider,
        max_words: int = 1000,
        timeout: float = 30.0,
        max_tokens: int = 1000,
        custom_max_length: int = 500,
        rng: Optional[random.Random] = None,
    ):
        self.provider = provider
        self.max_words = max_words
        self.custom_max_length = custom_max_length
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._rng = rng

    def _resolve(self, selector: PersonaSelector) -> tuple[str, float, tuple]:
        """Return (directive, temperature, examples) for selector."""
        selector.validate(self.custom_max_length)
        if selector.is_custom:
            return (
                CUSTOM_DIRECTIVE_TEMPLATE.format(guidance=selector.custom_persona.strip()),
                CUSTOM_PERSONA_TEMPERATURE,
                (),
            )
        persona = get_persona(selector.persona) if selector.persona else pick_random_persona(self._rng)
        return persona.directive, persona.temperature, persona.examples

    def build_prompt(self, message: str, directive: str, examples=()) -> str:
        shown = "".join(
            "\n" + EXAMPLE_TEMPLATE.format(source=source, rewrite=rewrite)
            for source, rewrite in examples
        )
        return PROMPT_TEMPLATE.format(directive=directive, examples=shown, message=message)

    async def transform(self, text: str, selector: PersonaSelector) -> str:
        """Rewrite text in the selected style.

        Raises:
            ValidationError: If the persona key is unknown or custom guidance
                is too long
            TransformationError: On provider failure, timeout or empty output
        """
        directive, temperature, examples = self._resolve(selector)

        if exceeds_word_limit(text, self.max_words):
            logger.info("Message over word limit, truncating before transformation")
            text = truncate_to_words(text, self.max_words)

        prompt = self.build_prompt(text, directive, examples)

        try:
            output = await asyncio.wait_for(
                self.provider.complete(prompt, temperature=temperature, max_tokens=self.max_tokens),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Transformation timed out",
                extra={"provider": self.provider.name, "persona": selector.label},
            )
            raise TransformationError(
                TransformationError.NETWORK,
                f"Transformation timed out after {self.timeout:g}s",
            ) from None
        except ProviderError as e:
            code = classify_provider_error(e)
            logger.warning(
                f"Transformation failed: {code}",
                extra={"provider": self.provider.name, "persona": selector.label},
            )
            raise TransformationError(code, e.message, retry_after=e.retry_after) from e

        result = (output or "").strip()
        if not result:
            raise TransformationError(
                TransformationError.EMPTY_CONTENT,
                "AI service returned an empty response",
            )

        if exceeds_word_limit(result, self.max_words):
            result = truncate_to_words(result, self.max_words)

        return result
