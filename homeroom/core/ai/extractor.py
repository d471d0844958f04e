"""
Event and todo extraction.

Turns a batch of (already anonymized) emails into an ExtractionResult with
one structured-output call. There is no retry here: a failed call is an
ExtractionError and the caller decides what to do with the email.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

from .extraction_schema import ExtractionResult, TimeOfDay, TIME_OF_DAY_DEFAULTS
from .prompts import get_prompt
from .registry import ProviderRegistry, UnknownProviderError

logger = logging.getLogger(__name__)

MAX_BODY_CHARS = 3000
MAX_ATTACHMENT_CHARS = 2000


class ExtractionError(Exception):
    """The provider failed or returned something that does not fit the schema."""
    pass


@dataclass
class EmailContent:
    """Text of one email as it is sent to the model."""
    id: str
    from_address: str
    subject: str
    received_at: str
    from_name: str = ""
    snippet: str = ""
    body_text: Optional[str] = None
    attachment_content: Optional[str] = None


def apply_time_defaults(result: ExtractionResult) -> ExtractionResult:
    """
    Pin events with a rough time of day to its default start time.

    Events marked `specific` keep the time the model gave.
    """
    for event in result.events:
        if not event.date or event.time_of_day == TimeOfDay.SPECIFIC:
            continue
        default_time = TIME_OF_DAY_DEFAULTS.get(event.time_of_day)
        if default_time:
            date_part = event.date.split('T')[0]
            event.date = f"{date_part}T{default_time}"
    return result


def build_email_block(index: int, email: EmailContent) -> str:
    body_section = f"\nFull Body:\n{email.body_text[:MAX_BODY_CHARS]}\n" if email.body_text else ""
    attachment_section = (
        f"\n=== ATTACHMENT CONTENT ===\n{email.attachment_content[:MAX_ATTACHMENT_CHARS]}\n"
        if email.attachment_content else ""
    )
    return get_prompt(
        "extraction.email_block",
        index=index,
        from_name=email.from_name or "",
        from_address=email.from_address,
        subject=email.subject,
        received_at=email.received_at,
        snippet=email.snippet or "",
        body_section=body_section,
        attachment_section=attachment_section,
    )


def build_extraction_prompt(emails: List[EmailContent], child_context: str = "", today: Optional[date] = None) -> str:
    """
    Build the user prompt for a batch of emails.

    Args:
        emails: Emails to analyze (already anonymized)
        child_context: Anonymized child profile lines, or empty
        today: Reference date for relative-date inference (defaults to today)

    Returns:
        Prompt text
    """
    today = today or datetime.now().date()
    blocks = "\n".join(build_email_block(i, email) for i, email in enumerate(emails, 1))
    return get_prompt(
        "extraction.user_prompt",
        current_date=today.isoformat(),
        current_year=today.year,
        next_year=today.year + 1,
        child_context=child_context,
        email_count=len(emails),
        emails=blocks,
    )


class EventTodoExtractor:
    """Calls the configured provider with the ExtractionResult schema."""

    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    async def extract(
        self,
        emails: List[EmailContent],
        child_context: str = "",
        provider: Optional[str] = None,
        today: Optional[date] = None,
    ) -> ExtractionResult:
        """
        Extract events and todos from a batch of emails.

        Args:
            emails: Emails to analyze (already anonymized)
            child_context: Anonymized child profile lines
            provider: Provider name (defaults to the registry default)
            today: Reference date for the prompt

        Returns:
            ExtractionResult with time-of-day defaults applied

        Raises:
            ExtractionError: Provider error or non-conforming response
            UnknownProviderError: Provider name is not registered
        """
        if not emails:
            return ExtractionResult(emails_analyzed=0)

        llm = self.registry.get(provider)
        prompt = build_extraction_prompt(emails, child_context, today)
        system = get_prompt("extraction.system_prompt")

        logger.info(f"Extracting events/todos from {len(emails)} email(s) with {llm.name}")

        try:
            response = await llm.complete(prompt, ExtractionResult, system=system)
        except UnknownProviderError:
            raise
        except Exception as e:
            raise ExtractionError(f"{llm.name} extraction failed: {e}") from e

        result = response.parsed
        if not isinstance(result, ExtractionResult):
            try:
                result = ExtractionResult.model_validate(
                    result.model_dump() if hasattr(result, 'model_dump') else result
                )
            except Exception as e:
                raise ExtractionError(f"{llm.name} returned a malformed result: {e}") from e

        if not result.emails_analyzed:
            result.emails_analyzed = len(emails)

        logger.info(f"Extracted {len(result.events)} events, {len(result.todos)} todos")
        return apply_time_defaults(result)
