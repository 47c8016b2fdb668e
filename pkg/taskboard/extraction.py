"""
Extraction client: free text -> raw model output.

Builds the extraction prompt (with the reference date spelled out so the
model can resolve "tomorrow" or "next Friday"), makes exactly one provider
call, and checks that something JSON-shaped came back. Retries are left to
the caller.
"""
import logging
from datetime import date, datetime
from typing import Optional, Protocol

from .errors import ExtractionServiceError, InvalidInputError
from .validator import parse_model_json

logger = logging.getLogger(__name__)


class CompletionProvider(Protocol):
    def complete(self, prompt: str) -> str:
        ...


EXTRACTION_PROMPT = """You are a task extraction assistant. Extract actionable tasks from the user's text.

Reference date: {reference} ({weekday})

Rules:
- Resolve relative dates ("today", "tomorrow", "next Friday", "in 3 days") against the reference date and write them as absolute YYYY-MM-DD dates.
- Omit "dueDate" when no date is mentioned or implied.
- "priority" is one of "low", "medium", "high". Use "high" for urgent wording (urgent, asap, immediately, important), "low" for "someday", "no rush" and similar, otherwise "medium".
- Keep "title" short and imperative, without the date or urgency words.
- "category" is optional: Work, Personal, Shopping, Home, Health, or another short label if one is implied.
- If the text contains no tasks, return an empty list.

Respond with ONLY a JSON object, no markdown, no explanation:
{{"tasks": [{{"title": "...", "description": "...", "dueDate": "YYYY-MM-DD", "priority": "medium", "category": "..."}}]}}

<text>
{text}
</text>"""


def build_prompt(text: str, reference_date: date) -> str:
    """Build the extraction prompt for a block of user text."""
    return EXTRACTION_PROMPT.format(
        reference=reference_date.isoformat(),
        weekday=reference_date.strftime("%A"),
        text=text.strip(),
    )


class ExtractionClient:
    """Calls a completion provider to turn user text into raw task JSON."""

    def __init__(self, provider: CompletionProvider):
        self.provider = provider

    def extract(self, text: str, reference_date: Optional[date] = None) -> str:
        """
        Ask the provider for tasks found in text.

        Raises:
            InvalidInputError: text is missing or blank.
            ExtractionServiceError: the provider call failed.
            ExtractionFormatError: the provider answered with an empty or
                non-JSON body.
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("Text content is required")
        if reference_date is None:
            reference_date = date.today()
        elif isinstance(reference_date, datetime):
            reference_date = reference_date.date()

        prompt = build_prompt(text, reference_date)
        try:
            raw = self.provider.complete(prompt)
        except Exception as e:
            logger.warning("Extraction provider failed: %s: %s", e.__class__.__name__, e)
            raise ExtractionServiceError(
                f"Model provider error: {e.__class__.__name__}: {e}"
            ) from e

        # Fails with ExtractionFormatError on empty / non-JSON bodies
        parse_model_json(raw)
        return raw
