"""
Conversation routing.

Maps sanitized message text to exactly one intent. Matching is plain
case-insensitive substring containment; the matched markers are removed from
the prompt handed to the image handlers.
"""

from __future__ import annotations

import re

from collections.abc import Iterable
from dataclasses import dataclass

from core.constants import IMAGE_EDIT_MARKERS, IMAGE_GENERATE_MARKERS
from models.conversation import ImageEdit, ImageGenerate, Intent, TextCompletion


def _present(text_lower: str, markers: Iterable[str]) -> list[str]:
    return [marker for marker in markers if marker.lower() in text_lower]


def strip_markers(text: str, markers: Iterable[str]) -> str:
    """Remove every occurrence of ``markers`` (case-insensitive) and trim."""
    for marker in markers:
        text = re.sub(re.escape(marker), "", text, flags=re.IGNORECASE)
    return text.strip()


@dataclass(frozen=True, slots=True)
class ConversationRouter:
    """Classifies text as an image edit, image generation or text completion.

    Edit markers win over generate markers when both are present.
    """

    edit_markers: tuple[str, ...] = IMAGE_EDIT_MARKERS
    generate_markers: tuple[str, ...] = IMAGE_GENERATE_MARKERS

    def route(self, text: str) -> Intent:
        lowered = text.lower()

        if matched := _present(lowered, self.edit_markers):
            return ImageEdit(prompt=strip_markers(text, matched))

        if matched := _present(lowered, self.generate_markers):
            return ImageGenerate(prompt=strip_markers(text, matched))

        return TextCompletion(prompt=text)


_default_router = ConversationRouter()


def route(text: str) -> Intent:
    """Route with the default marker set."""
    return _default_router.route(text)
