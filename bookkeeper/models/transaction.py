"""
Core Data Models for Chat Bookkeeper

These models define the strict schemas for everything flowing through the
free-text pipeline:

    RawMessage → ParsedInput → ResolutionResult → TransactionDraft
        → DispatchOutcome → ReplyMessage

DESIGN DECISION: Per-message models (ParsedInput, ResolutionResult,
TransactionDraft) are frozen. They are produced once per attempt and never
mutated, which keeps a retry from inheriting half-updated state.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


INCOME_MAJOR_PREFIX = "8"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_term(text: str) -> str:
    """Normalize a user-typed term for comparison (trim + lowercase)."""
    return text.strip().lower()


def split_category_code(code: str) -> tuple[str, str]:
    """
    Split a "major-sub" category code into its parts.

    Raises ValueError for anything that isn't exactly two non-empty parts.
    """
    parts = [part.strip() for part in code.split("-")]
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Invalid category code: {code!r}")
    return parts[0], parts[1]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class MatchMethod(str, Enum):
    """
    Which resolver tier produced a match.

    Listed from the strongest tier to the weakest.
    """
    PREFERENCE = "preference"
    EXACT = "exact"
    SYNONYM = "synonym"
    COMPOUND = "compound"
    FUZZY = "fuzzy"


class TransactionAction(str, Enum):
    """Direction of a ledger entry."""
    INCOME = "income"
    EXPENSE = "expense"


class UserClassification(str, Enum):
    """How the ledger labels the person who recorded an entry."""
    MANAGER = "M"
    SYSTEM = "S"
    JUNIOR = "J"


class MessageSource(str, Enum):
    """Where an incoming message came from."""
    CHAT = "chat"
    RICH_MENU = "rich_menu"
    WEBHOOK = "webhook"


class Destination(str, Enum):
    """Closed set of handlers a message can be routed to."""
    BOOKKEEPING = "bookkeeping"
    UNROUTED = "unrouted"


class DispatchState(str, Enum):
    """Pipeline state machine for one attempt."""
    PARSING = "parsing"
    RESOLVING = "resolving"
    DRAFTING = "drafting"
    COMMITTING = "committing"
    SUCCEEDED = "succeeded"
    FAILED_TERMINAL = "failed_terminal"
    FAILED_RETRYABLE = "failed_retryable"


class ErrorKind(str, Enum):
    """
    Every failure the pipeline can report.

    The first five are validation errors: terminal, never retried.
    """
    EMPTY_MESSAGE = "EmptyMessage"
    FORMAT_NOT_RECOGNIZED = "FormatNotRecognized"
    MISSING_SUBJECT = "MissingSubject"
    UNKNOWN_SUBJECT = "UnknownSubject"
    INVALID_AMOUNT = "InvalidAmount"
    LOOKUP_FAILED = "LookupFailed"
    COMMIT_FAILED = "CommitFailed"
    COMMIT_REJECTED = "CommitRejected"
    MAX_RETRIES_EXCEEDED = "MaxRetriesExceeded"
    UNSUPPORTED_MESSAGE = "UnsupportedMessage"
    INTERNAL_ERROR = "InternalError"
    FORMAT_ERROR = "FormatError"


# =============================================================================
# INPUT MODELS
# =============================================================================

class RawMessage(BaseModel):
    """
    An uninterpreted chat message.

    The correlation token is only used for tracing, never for identity.
    """
    model_config = ConfigDict(frozen=True)

    text: str
    user_id: str = Field(
        ...,
        min_length=1,
        description="Messenger user id"
    )
    timestamp_millis: int = Field(
        ...,
        ge=0,
        description="When the user sent the message (epoch milliseconds)"
    )
    correlation_token: str = Field(
        default_factory=lambda: uuid4().hex,
        description="Opaque token tying together all logs for this message"
    )
    source: MessageSource = MessageSource.CHAT

    @property
    def received_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp_millis / 1000, tz=timezone.utc)


class ParsedInput(BaseModel):
    """Tokenized message: subject, amount and optional payment method."""
    model_config = ConfigDict(frozen=True)

    subject_text: str = Field(
        ...,
        min_length=1,
        description="Text before the amount, trimmed"
    )
    amount: Decimal = Field(
        ...,
        description="Signed amount"
    )
    raw_amount_text: str = Field(
        ...,
        pattern=r"^-?\d+$",
        description="The digit run exactly as typed, sign included"
    )
    payment_method_text: Optional[str] = Field(
        default=None,
        description="Vocabulary term or raw trailing text, if any"
    )
    original_text: str = Field(
        ...,
        description="The whole message, used for remark extraction"
    )


# =============================================================================
# DICTIONARY & PREFERENCE MODELS
# =============================================================================

class CategoryEntry(BaseModel):
    """
    One income/expense classification in a ledger.

    (major_code, sub_code) is unique within a ledger.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    major_code: str = Field(..., min_length=1, max_length=10)
    major_name: str = Field(default="", max_length=100)
    sub_code: str = Field(..., min_length=1, max_length=10)
    sub_name: str = Field(..., min_length=1, max_length=100)
    synonyms: list[str] = Field(default_factory=list)

    @field_validator('synonyms', mode='before')
    @classmethod
    def split_synonyms(cls, v):
        """Accept the comma-separated form ledgers store, drop blanks and duplicates."""
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        seen = set()
        cleaned = []
        for synonym in v:
            synonym = str(synonym).strip()
            key = synonym.lower()
            if synonym and key not in seen:
                seen.add(key)
                cleaned.append(synonym)
        return cleaned

    @property
    def code(self) -> str:
        return f"{self.major_code}-{self.sub_code}"

    @property
    def is_income(self) -> bool:
        return self.major_code.startswith(INCOME_MAJOR_PREFIX)

    def has_synonym(self, term: str) -> bool:
        key = normalize_term(term)
        return any(normalize_term(s) == key for s in self.synonyms)


class PreferenceRecord(BaseModel):
    """
    A learned mapping from something a user typed to a category code.

    One record per (user_id, input_term, category_code).
    """

    user_id: str = Field(..., min_length=1)
    input_term: str = Field(
        ...,
        min_length=1,
        description="Normalized (trimmed, lowercase) term"
    )
    category_code: str
    use_count: int = Field(default=1, ge=1)
    last_used_at: datetime = Field(default_factory=_utcnow)

    @field_validator('input_term')
    @classmethod
    def normalize_input_term(cls, v: str) -> str:
        return normalize_term(v)

    @field_validator('category_code')
    @classmethod
    def validate_category_code(cls, v: str) -> str:
        split_category_code(v)
        return v.strip()


# =============================================================================
# RESOLUTION & DRAFT MODELS
# =============================================================================

class ResolutionResult(BaseModel):
    """
    Transient output of the subject resolver. Never persisted.
    """
    model_config = ConfigDict(frozen=True)

    entry: CategoryEntry
    match_method: MatchMethod
    confidence: float = Field(..., ge=0.0, le=1.0)
    matched_term: Optional[str] = Field(
        default=None,
        description="Dictionary term (name or synonym) that produced the hit"
    )

    @property
    def category_code(self) -> str:
        return self.entry.code

    @property
    def category_name(self) -> str:
        return self.entry.sub_name

    @property
    def major_code(self) -> str:
        return self.entry.major_code


class TransactionDraft(BaseModel):
    """
    A validated, categorized entry ready to hand to the ledger store.

    process_id is regenerated on every attempt; it is for tracing only.
    """
    model_config = ConfigDict(frozen=True)

    subject_text: str = Field(..., description="Canonical subject name")
    original_subject_text: str = Field(..., description="Subject as typed")
    category_code: str
    category_name: str
    major_code: str
    major_name: str = ""
    sub_code: str
    amount: Decimal = Field(..., gt=0)
    raw_amount_text: str
    action: TransactionAction
    payment_method: Optional[str] = None
    remark_text: str
    process_id: str = Field(..., min_length=1)

    # Traceability
    user_id: str
    ledger_id: str
    user_classification: UserClassification = UserClassification.JUNIOR
    recorded_at: datetime
    correlation_token: str
    match_method: MatchMethod
    confidence: float = Field(..., ge=0.0, le=1.0)

    @model_validator(mode='after')
    def validate_action(self) -> 'TransactionDraft':
        """Action is decided by the major code, never by the amount."""
        expected = (
            TransactionAction.INCOME
            if self.major_code.startswith(INCOME_MAJOR_PREFIX)
            else TransactionAction.EXPENSE
        )
        if self.action != expected:
            raise ValueError(
                f"Action {self.action.value} does not match major code {self.major_code}"
            )
        return self

    @property
    def income(self) -> Optional[Decimal]:
        return self.amount if self.action == TransactionAction.INCOME else None

    @property
    def expense(self) -> Optional[Decimal]:
        return self.amount if self.action == TransactionAction.EXPENSE else None


# =============================================================================
# OUTCOME MODELS
# =============================================================================

class PartialData(BaseModel):
    """
    Best-effort reconstruction of what the user typed.

    Filled in stage by stage so that even a failure can echo back
    whatever was understood before things went wrong.
    """

    subject: Optional[str] = None
    amount: Optional[Decimal] = None
    raw_amount: Optional[str] = None
    payment_method: Optional[str] = None
    remark: Optional[str] = None
    action: Optional[TransactionAction] = None
    category_code: Optional[str] = None
    timestamp: Optional[datetime] = None
    user_classification: Optional[UserClassification] = None

    def merge(self, **updates) -> 'PartialData':
        """Return a copy with the non-None updates applied."""
        return self.model_copy(
            update={key: value for key, value in updates.items() if value is not None}
        )


class CommitResult(BaseModel):
    """What a ledger store reports back for one commit call."""

    success: bool
    entry_id: Optional[str] = None
    payment_method: Optional[str] = Field(
        default=None,
        description="Payment method as stored, after the ledger's defaults"
    )
    error: Optional[str] = None
    retryable: bool = False

    @model_validator(mode='after')
    def validate_consistency(self) -> 'CommitResult':
        if self.success and self.retryable:
            raise ValueError("A successful commit cannot be retryable")
        return self


class DispatchOutcome(BaseModel):
    """
    Result of distributing one message.

    Drives both the retry loop and the response formatter.
    """

    success: bool
    state: DispatchState
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    retryable: bool = False
    partial_data: PartialData = Field(default_factory=PartialData)
    draft: Optional[TransactionDraft] = None
    entry_id: Optional[str] = None
    attempts: int = Field(default=1, ge=1)
    process_id: Optional[str] = None
    destination: Destination = Destination.BOOKKEEPING
    response_message: Optional[str] = Field(
        default=None,
        description="Fully formed reply; the formatter passes it through unchanged"
    )

    @model_validator(mode='after')
    def validate_state(self) -> 'DispatchOutcome':
        if self.success != (self.state == DispatchState.SUCCEEDED):
            raise ValueError("success must match the SUCCEEDED state")
        if self.success and self.error_kind is not None:
            raise ValueError("A successful outcome cannot carry an error kind")
        if self.retryable and self.state != DispatchState.FAILED_RETRYABLE:
            raise ValueError("Only FAILED_RETRYABLE outcomes may be retryable")
        return self


class ReplyMessage(BaseModel):
    """Unified reply handed back to the messenger."""

    success: bool
    response_message: str
    module_tag: str
    process_id: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    partial_data: PartialData = Field(default_factory=PartialData)
