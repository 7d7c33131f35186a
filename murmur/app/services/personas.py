"""Persona catalog and persona selection.

A persona is either a named entry of the fixed catalog below or free-text
style guidance supplied by the submitter.
"""

import random
from dataclasses import dataclass, field
from typing import Optional

from murmur.app.exceptions import InvalidPersonaError, ValidationError

CUSTOM_PERSONA_TEMPERATURE = 0.7
CUSTOM_LABEL = "custom"


@dataclass(frozen=True)
class Persona:
    """A catalog persona."""
    key: str
    name: str
    description: str
    directive: str
    temperature: float
    examples: tuple[tuple[str, str], ...] = field(default_factory=tuple)


PERSONAS: dict[str, Persona] = {
    persona.key: persona
    for persona in (
        Persona(
            key="internet-random",
            name="Internet Random",
            description="Casual internet slang with abbreviations, mild typos, and meme references",
            directive=(
                "Transform to casual internet slang with abbreviations, mild typos, "
                "and meme references."
            ),
            temperature=0.8,
            examples=(
                ("I think this is a great idea and we should implement it.",
                 "ngl this idea slaps we should def implement this fr fr"),
                ("This feature is broken and needs to be fixed.",
                 "yo this feature is busted rn, needs fixing asap ngl"),
            ),
        ),
        Persona(
            key="barely-literate",
            name="Barely Literate",
            description="Poor grammar, simple vocabulary, and informal structure",
            directive=(
                "Transform to poor grammar, simple vocabulary, and informal structure. "
                "Use run-on sentences, missing punctuation, and basic words."
            ),
            temperature=0.7,
            examples=(
                ("I disagree with this decision because it seems poorly thought out.",
                 "i dont like this thing cuz it dont make sense to me and stuff"),
            ),
        ),
        Persona(
            key="extremely-serious",
            name="Extremely Serious",
            description="Formal, academic language with professional vocabulary",
            directive=(
                "Transform to formal, academic language with professional vocabulary "
                "and structure. Use complex sentence structures, formal tone, and "
                "precise terminology."
            ),
            temperature=0.3,
            examples=(
                ("This is really bad and needs to be fixed.",
                 "This matter requires immediate attention and systematic remediation "
                 "to address the identified deficiencies."),
            ),
        ),
        Persona(
            key="super-nice",
            name="Super Nice",
            description="Overly polite, encouraging, and positive language",
            directive=(
                "Transform to overly polite, encouraging, and positive language. Add "
                "pleasantries, expressions of gratitude, and positive framing."
            ),
            temperature=0.6,
            examples=(
                ("I disagree with this approach.",
                 "Thank you for sharing this approach! I was wondering if we might "
                 "consider some alternative perspectives that could be equally valuable."),
            ),
        ),
    )
}


def list_personas() -> list[dict[str, str]]:
    """Public view of the catalog with one sample rewrite per persona."""
    return [
        {
            "key": p.key,
            "name": p.name,
            "description": p.description,
            "example": p.examples[0][1] if p.examples else "",
        }
        for p in PERSONAS.values()
    ]


def get_persona(key: str) -> Persona:
    """Look up a catalog persona.

    Raises:
        InvalidPersonaError: If key is not in the catalog
    """
    try:
        return PERSONAS[key]
    except KeyError:
        raise InvalidPersonaError(key) from None


@dataclass(frozen=True)
class PersonaSelector:
    """Style selection for one transformation: a catalog key or custom guidance.

    Custom guidance wins when both are given.
    """
    persona: Optional[str] = None
    custom_persona: Optional[str] = None

    @property
    def is_custom(self) -> bool:
        return bool(self.custom_persona and self.custom_persona.strip())

    @property
    def is_empty(self) -> bool:
        return not self.is_custom and not self.persona

    @property
    def label(self) -> str:
        """Persona label reported back to the caller."""
        if self.is_custom:
            return CUSTOM_LABEL
        return self.persona or "random"

    def validate(self, custom_max_length: int = 500) -> None:
        """Check the selector without resolving it.

        Raises:
            ValidationError: If custom guidance is too long
            InvalidPersonaError: If the persona key is unknown
        """
        if self.is_custom:
            if len(self.custom_persona) > custom_max_length:
                raise ValidationError(
                    f"Custom persona too long (max {custom_max_length} characters)"
                )
            return
        if self.persona:
            get_persona(self.persona)


def pick_random_persona(rng: Optional[random.Random] = None) -> Persona:
    """Draw a catalog persona for submissions that name none."""
    chooser = rng or random
    return chooser.choice(list(PERSONAS.values()))
