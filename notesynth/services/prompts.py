"""
Prompt Templates

A note-generation prompt is a template with a single substitution marker
({{TRANSCRIPT}}) that is replaced by an item's raw caption text. Templates are
validated when constructed: a template without the marker is rejected with a
TemplateError, which is batch-fatal.

Usage:
    from notesynth.services.prompts import PromptTemplate, get_default_template

    template = get_default_template()
    prompt = template.render(item.raw_text)

    # Custom template sent base64 encoded by a client
    template = PromptTemplate.from_base64(header_value)
"""

import base64
import binascii
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Union

from notesynth.config import settings
from notesynth.services.errors import TemplateError

TRANSCRIPT_MARKER = "{{TRANSCRIPT}}"

DEFAULT_TEMPLATE_PATH = Path(__file__).parent.parent / "prompts" / "note_generation.txt"

# System message for chat-style providers
NOTE_SYSTEM_PROMPT = (
    "You are a helpful assistant that converts lecture transcripts "
    "into well-structured Markdown notes."
)


@dataclass(frozen=True)
class PromptTemplate:
    """Prompt text containing exactly one required substitution marker."""

    text: str
    marker: str = TRANSCRIPT_MARKER

    def __post_init__(self) -> None:
        if self.marker not in self.text:
            raise TemplateError(
                f"Prompt template must contain the {self.marker} marker",
                details={"marker": self.marker},
            )

    def render(self, raw_text: str) -> str:
        """Substitute the raw text for the (first) marker."""
        return self.text.replace(self.marker, raw_text, 1)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PromptTemplate":
        """Load a template from a UTF-8 text file."""
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise TemplateError(f"Cannot read prompt template {path}: {e}") from e
        return cls(text)

    @classmethod
    def from_base64(cls, encoded: str) -> "PromptTemplate":
        """
        Decode a base64 (UTF-8) template.

        Clients send custom templates base64 encoded so arbitrary Unicode
        survives transport in headers and query strings.
        """
        try:
            text = base64.b64decode(encoded, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise TemplateError(f"Prompt template is not valid base64 UTF-8: {e}") from e
        return cls(text)


@lru_cache()
def get_default_template() -> PromptTemplate:
    """Get the configured default template (cached)."""
    return PromptTemplate.from_file(settings.PROMPT_TEMPLATE_PATH or DEFAULT_TEMPLATE_PATH)
