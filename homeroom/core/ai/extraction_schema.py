"""
Structured output models for event and todo extraction.

These are passed to the provider as the response schema, so the field
descriptions double as instructions to the model.
"""
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class TimeOfDay(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    ALL_DAY = "all_day"
    SPECIFIC = "specific"


class TodoType(str, Enum):
    PAY = "PAY"
    BUY = "BUY"
    PACK = "PACK"
    SIGN = "SIGN"
    FILL = "FILL"
    READ = "READ"
    DECIDE = "DECIDE"
    REMIND = "REMIND"


class ResponsibleParty(str, Enum):
    PARENT = "parent"
    CHILD = "child"
    BOTH = "both"


# Start time used when the email only gives a rough part of the day
TIME_OF_DAY_DEFAULTS = {
    TimeOfDay.MORNING: "09:00:00",
    TimeOfDay.AFTERNOON: "12:00:00",
    TimeOfDay.EVENING: "17:00:00",
    TimeOfDay.ALL_DAY: "09:00:00",
}


class HumanAnalysis(BaseModel):
    """Human-readable reading of the email batch."""
    email_summary: str = Field(description="Brief summary of what the emails are about (1-2 sentences)")
    email_tone: str = Field(description="Overall tone (informative, urgent, casual, formal, friendly, ...)")
    email_intent: str = Field(description="Primary intent (action required, information only, reminder, invitation, ...)")
    implicit_context: str = Field(description="Implicit assumptions or shared context the email relies on")


class ExtractedEvent(BaseModel):
    title: str = Field(description="Short event title")
    date: str = Field(description="Start date/time in ISO8601")
    end_date: Optional[str] = Field(None, description="End date/time in ISO8601 or null")
    description: Optional[str] = Field(None, description="Extra detail from the email")
    location: Optional[str] = Field(None, description="Where the event happens, if stated")
    child_name: Optional[str] = Field(None, description="Child this concerns (placeholder token as given) or null")
    source_email_id: Optional[str] = Field(None, description="Which email this came from")
    confidence: float = Field(ge=0.0, le=1.0, description="0.0-1.0 confidence score")
    recurring: bool = Field(False, description="True if the event repeats (weekly PE, clubs, ...)")
    recurrence_pattern: Optional[str] = Field(None, description="e.g. 'weekly on Tuesdays' when recurring")
    time_of_day: TimeOfDay = Field(TimeOfDay.SPECIFIC, description="morning|afternoon|evening|all_day|specific")
    inferred_date: bool = Field(False, description="True if the date was inferred from context")


class ExtractedTodo(BaseModel):
    description: str = Field(description="What the parent or child needs to do")
    type: TodoType = Field(description="PAY|BUY|PACK|SIGN|FILL|READ|DECIDE|REMIND")
    due_date: Optional[str] = Field(None, description="Deadline in ISO8601 or null")
    child_name: Optional[str] = Field(None, description="Child this concerns (placeholder token as given) or null")
    source_email_id: Optional[str] = Field(None, description="Which email this came from")
    url: Optional[str] = Field(None, description="Payment or form link, if any")
    amount: Optional[str] = Field(None, description="Amount to pay, e.g. '£15.00'")
    confidence: float = Field(ge=0.0, le=1.0, description="0.0-1.0 confidence score")
    recurring: bool = Field(False, description="True if this action repeats")
    recurrence_pattern: Optional[str] = Field(None, description="e.g. 'every Tuesday' when recurring")
    responsible_party: ResponsibleParty = Field(ResponsibleParty.PARENT, description="parent|child|both")
    inferred: bool = Field(False, description="True if the action was implied rather than stated")


class ExtractionResult(BaseModel):
    """Everything one extraction pass produced."""
    human_analysis: Optional[HumanAnalysis] = None
    events: List[ExtractedEvent] = Field(default_factory=list)
    todos: List[ExtractedTodo] = Field(default_factory=list)
    emails_analyzed: int = Field(0, description="Number of emails analyzed")

    @property
    def items(self) -> list:
        return [*self.events, *self.todos]
