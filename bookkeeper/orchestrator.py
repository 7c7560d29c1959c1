"""
Dispatch Orchestrator for Chat Bookkeeper

This module ties the pipeline together and defines the end-to-end flow
for one incoming message:

    classify → parse → resolve → draft → commit → learn → format

DESIGN DECISION: The orchestrator enforces the boundaries:
- Validation failures (parse, resolve, draft) are terminal and never retried
- Only failures the ledger store classifies as retryable are retried
- Every attempt re-runs the whole pipeline with a fresh process id
- No exception crosses handle_message; every outcome becomes a ReplyMessage

All collaborators live in one PipelineContext built by the factory at the
bottom of this module and passed in explicitly. Nothing here reads ambient
module state while a message is being processed.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from bookkeeper.audit import AuditLogger, create_process_id
from bookkeeper.config import (
    AppSettings,
    DispatchSettings,
    ResolverSettings,
    get_settings,
    validate_all_settings,
)
from bookkeeper.drafting import TransactionDrafter
from bookkeeper.errors import BookkeepingError
from bookkeeper.models.audit import AuditEventBuilder
from bookkeeper.models.transaction import (
    CommitResult,
    Destination,
    DispatchOutcome,
    DispatchState,
    ErrorKind,
    MatchMethod,
    MessageSource,
    PartialData,
    RawMessage,
    ReplyMessage,
    TransactionDraft,
    normalize_term,
)
from bookkeeper.parsing import InputParser
from bookkeeper.replies import ResponseFormatter
from bookkeeper.resolution import SubjectResolver
from bookkeeper.services.storage import (
    CategoryDictionaryInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryCategoryDictionary,
    InMemoryLedgerStore,
    InMemoryPreferenceStore,
    LedgerStoreInterface,
    PreferenceStoreInterface,
    StorageError,
    TransientStorageError,
)


logger = structlog.get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class PipelineContext:
    """
    Everything one message needs, constructed once per process.

    Holds the collaborators and the pipeline stages built on top of them.
    """

    def __init__(
        self,
        dictionary: CategoryDictionaryInterface,
        preferences: PreferenceStoreInterface,
        ledger_store: LedgerStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        resolver_settings: Optional[ResolverSettings] = None,
        dispatch_settings: Optional[DispatchSettings] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        settings = None
        if resolver_settings is None or dispatch_settings is None or app_settings is None:
            settings = get_settings()

        self.dictionary = dictionary
        self.preferences = preferences
        self.ledger_store = ledger_store
        self.audit_logger = audit_logger
        self.dispatch_settings = dispatch_settings or settings.dispatch
        self.app_settings = app_settings or settings.app

        self.parser = InputParser()
        self.resolver = SubjectResolver(
            dictionary,
            preferences,
            settings=resolver_settings or settings.resolver,
            ledger_id_template=self.app_settings.ledger_id_template,
        )
        self.drafter = TransactionDrafter(self.app_settings)
        self.formatter = ResponseFormatter(self.app_settings.timezone)


# =============================================================================
# DESTINATION HANDLERS
# =============================================================================

class DestinationHandler(ABC):
    """Processes one attempt for messages routed to a destination."""

    module_tag: str = "unknown"

    def __init__(self, context: PipelineContext):
        self._context = context

    @abstractmethod
    async def handle(self, raw: RawMessage) -> DispatchOutcome:
        """
        Run one attempt.

        Returns:
            A terminal, retryable or successful outcome. Never raises.
        """
        pass


class BookkeepingHandler(DestinationHandler):
    """
    Free-text bookkeeping: the parse → resolve → draft → commit pipeline.

    Flow of one attempt:
    1. Parse → subject, amount, payment method
    2. Resolve → category entry (five tiers)
    3. Draft → validated TransactionDraft
    4. Commit → ledger store decides success / retryable / terminal
    5. Learn → preferences and synonyms, only after a successful commit
    """

    module_tag = "bookkeeping"

    async def handle(self, raw: RawMessage) -> DispatchOutcome:
        ctx = self._context
        process_id = create_process_id()
        state = DispatchState.PARSING
        partial = PartialData(timestamp=raw.received_at)

        try:
            parsed = ctx.parser.parse(raw.text)
            partial = partial.merge(
                subject=parsed.subject_text,
                amount=parsed.amount,
                raw_amount=parsed.raw_amount_text,
                payment_method=parsed.payment_method_text,
            )

            state = DispatchState.RESOLVING
            ledger_id = ctx.resolver.ledger_id_for(raw.user_id)
            try:
                resolution = await ctx.resolver.resolve(
                    parsed.subject_text,
                    raw.user_id,
                    ledger_id=ledger_id,
                )
            except StorageError as e:
                logger.error(
                    "category_lookup_failed",
                    error=str(e),
                    user_id=raw.user_id,
                    process_id=process_id,
                )
                if ctx.audit_logger:
                    await ctx.audit_logger.log_error(
                        error_type=ErrorKind.LOOKUP_FAILED.value,
                        error_message=str(e),
                        correlation_id=raw.correlation_token,
                    )
                return self._terminal(
                    ErrorKind.LOOKUP_FAILED, str(e), partial, process_id
                )

            if ctx.audit_logger:
                if resolution is None:
                    await ctx.audit_logger.log(AuditEventBuilder.subject_unresolved(
                        user_id=raw.user_id,
                        subject=parsed.subject_text,
                        correlation_id=raw.correlation_token,
                        process_id=process_id,
                    ))
                else:
                    await ctx.audit_logger.log_subject_resolved(
                        user_id=raw.user_id,
                        subject=parsed.subject_text,
                        category_code=resolution.category_code,
                        match_method=resolution.match_method.value,
                        confidence=resolution.confidence,
                        correlation_id=raw.correlation_token,
                        process_id=process_id,
                    )

            state = DispatchState.DRAFTING
            draft = ctx.drafter.draft(
                parsed,
                resolution,
                raw,
                ledger_id=ledger_id,
                process_id=process_id,
            )

            state = DispatchState.COMMITTING
            return await self._commit(draft, raw, partial)

        except BookkeepingError as e:
            partial = partial.merge(**e.partial_data.model_dump())
            if ctx.audit_logger:
                builder = (
                    AuditEventBuilder.parse_failed
                    if state == DispatchState.PARSING
                    else AuditEventBuilder.draft_rejected
                )
                await ctx.audit_logger.log(builder(
                    user_id=raw.user_id,
                    error_kind=e.kind.value,
                    error_message=e.message,
                    correlation_id=raw.correlation_token,
                    process_id=process_id,
                ))
            return self._terminal(e.kind, e.message, partial, process_id)

        except Exception as e:
            logger.error(
                "pipeline_failed",
                state=state.value,
                error=str(e),
                process_id=process_id,
                correlation_id=raw.correlation_token,
                exc_info=True,
            )
            if ctx.audit_logger:
                await ctx.audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"state": state.value, "process_id": process_id},
                    correlation_id=raw.correlation_token,
                )
            return self._terminal(
                ErrorKind.INTERNAL_ERROR, str(e), partial, process_id
            )

    async def _commit(
        self,
        draft: TransactionDraft,
        raw: RawMessage,
        partial: PartialData,
    ) -> DispatchOutcome:
        ctx = self._context
        partial = partial.merge(
            subject=draft.original_subject_text,
            payment_method=draft.payment_method,
            remark=draft.remark_text,
            action=draft.action,
            category_code=draft.category_code,
            user_classification=draft.user_classification,
        )

        try:
            result = await ctx.ledger_store.commit(draft)
        except TransientStorageError as e:
            result = CommitResult(success=False, error=str(e), retryable=True)
        except StorageError as e:
            result = CommitResult(success=False, error=str(e), retryable=False)

        if result.success:
            if result.payment_method and result.payment_method != draft.payment_method:
                draft = draft.model_copy(
                    update={"payment_method": result.payment_method}
                )
                partial = partial.merge(payment_method=result.payment_method)
            if ctx.audit_logger:
                await ctx.audit_logger.log_entry_committed(
                    user_id=draft.user_id,
                    entry_id=result.entry_id or "",
                    category_code=draft.category_code,
                    amount=draft.amount,
                    action=draft.action.value,
                    correlation_id=raw.correlation_token,
                    process_id=draft.process_id,
                )
            await self._learn(draft, raw)
            return DispatchOutcome(
                success=True,
                state=DispatchState.SUCCEEDED,
                partial_data=partial,
                draft=draft,
                entry_id=result.entry_id,
                process_id=draft.process_id,
            )

        logger.warning(
            "commit_failed",
            error=result.error,
            retryable=result.retryable,
            process_id=draft.process_id,
        )
        if ctx.audit_logger:
            await ctx.audit_logger.log_commit_failed(
                user_id=draft.user_id,
                error_message=result.error or "",
                retryable=result.retryable,
                correlation_id=raw.correlation_token,
                process_id=draft.process_id,
            )

        if result.retryable:
            return DispatchOutcome(
                success=False,
                state=DispatchState.FAILED_RETRYABLE,
                error_kind=ErrorKind.COMMIT_FAILED,
                error_message=result.error,
                retryable=True,
                partial_data=partial,
                process_id=draft.process_id,
            )
        return self._terminal(
            ErrorKind.COMMIT_REJECTED, result.error, partial, draft.process_id
        )

    async def _learn(self, draft: TransactionDraft, raw: RawMessage) -> None:
        """
        Remember what the user typed. Failures here never undo the commit.
        """
        ctx = self._context
        settings = ctx.dispatch_settings
        typed = draft.original_subject_text

        if settings.learn_preferences and (
            normalize_term(typed) != normalize_term(draft.category_name)
        ):
            try:
                await ctx.preferences.upsert(draft.user_id, typed, draft.category_code)
            except StorageError as e:
                logger.warning("preference_learning_failed", error=str(e), term=typed)
            else:
                if ctx.audit_logger:
                    await ctx.audit_logger.log(AuditEventBuilder.preference_learned(
                        user_id=draft.user_id,
                        term=typed,
                        category_code=draft.category_code,
                        correlation_id=raw.correlation_token,
                    ))

        if settings.learn_synonyms and draft.match_method in (
            MatchMethod.COMPOUND,
            MatchMethod.FUZZY,
        ):
            try:
                await ctx.dictionary.append_synonym(
                    draft.ledger_id,
                    draft.category_code,
                    typed,
                )
            except StorageError as e:
                logger.warning("synonym_learning_failed", error=str(e), term=typed)
            else:
                if ctx.audit_logger:
                    await ctx.audit_logger.log(AuditEventBuilder.synonym_learned(
                        user_id=draft.user_id,
                        term=typed,
                        category_code=draft.category_code,
                        correlation_id=raw.correlation_token,
                    ))

    @staticmethod
    def _terminal(
        kind: ErrorKind,
        message: Optional[str],
        partial: PartialData,
        process_id: str,
    ) -> DispatchOutcome:
        return DispatchOutcome(
            success=False,
            state=DispatchState.FAILED_TERMINAL,
            error_kind=kind,
            error_message=message,
            partial_data=partial,
            process_id=process_id,
        )


class UnroutedHandler(DestinationHandler):
    """Messages no handler accepts. Always terminal."""

    module_tag = "unrouted"

    async def handle(self, raw: RawMessage) -> DispatchOutcome:
        if self._context.audit_logger:
            await self._context.audit_logger.log(AuditEventBuilder.message_unrouted(
                user_id=raw.user_id,
                source=raw.source.value,
                correlation_id=raw.correlation_token,
            ))
        return DispatchOutcome(
            success=False,
            state=DispatchState.FAILED_TERMINAL,
            error_kind=ErrorKind.UNSUPPORTED_MESSAGE,
            error_message=f"Messages from {raw.source.value} are not handled",
            partial_data=PartialData(timestamp=raw.received_at),
            destination=Destination.UNROUTED,
        )


# Closed routing tables
_SOURCE_DESTINATIONS: dict[MessageSource, Destination] = {
    MessageSource.CHAT: Destination.BOOKKEEPING,
    MessageSource.RICH_MENU: Destination.BOOKKEEPING,
    MessageSource.WEBHOOK: Destination.UNROUTED,
}

_DESTINATION_HANDLERS: dict[Destination, type[DestinationHandler]] = {
    Destination.BOOKKEEPING: BookkeepingHandler,
    Destination.UNROUTED: UnroutedHandler,
}


def classify(raw: RawMessage) -> Destination:
    """Decide where a message goes. Unknown sources are unrouted."""
    return _SOURCE_DESTINATIONS.get(raw.source, Destination.UNROUTED)


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class DispatchOrchestrator:
    """
    Public entry point of the core.

    distribute() runs the bounded retry loop around a destination handler;
    handle_message() adds formatting and is the boundary no exception crosses.

    Usage:
        orchestrator = DispatchOrchestrator(context)
        reply = await orchestrator.handle_message(raw_message)
    """

    def __init__(
        self,
        context: PipelineContext,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self._context = context
        self._sleep = sleep
        self._handlers = {
            destination: handler_cls(context)
            for destination, handler_cls in _DESTINATION_HANDLERS.items()
        }

    @property
    def context(self) -> PipelineContext:
        return self._context

    async def distribute(self, raw: RawMessage) -> DispatchOutcome:
        """
        Process one message, retrying retryable failures.

        Delay before retry n is base_delay * 2^(n-1). After the last
        attempt a retryable failure becomes MaxRetriesExceeded.
        """
        destination = classify(raw)
        try:
            if self._context.audit_logger:
                await self._context.audit_logger.log_message_received(
                    user_id=raw.user_id,
                    text=raw.text,
                    source=raw.source.value,
                    correlation_id=raw.correlation_token,
                )

            outcome = await self._run_with_retries(raw, destination)

            if outcome.error_kind == ErrorKind.MAX_RETRIES_EXCEEDED:
                logger.error(
                    "retries_exhausted",
                    attempts=outcome.attempts,
                    correlation_id=raw.correlation_token,
                )
                if self._context.audit_logger:
                    await self._context.audit_logger.log(
                        AuditEventBuilder.retries_exhausted(
                            user_id=raw.user_id,
                            attempts=outcome.attempts,
                            last_error=outcome.error_message,
                            correlation_id=raw.correlation_token,
                        )
                    )
            return outcome

        except Exception as e:
            logger.error(
                "distribute_failed",
                error=str(e),
                correlation_id=raw.correlation_token,
                exc_info=True,
            )
            return DispatchOutcome(
                success=False,
                state=DispatchState.FAILED_TERMINAL,
                error_kind=ErrorKind.INTERNAL_ERROR,
                error_message=str(e),
                partial_data=PartialData(timestamp=raw.received_at),
                destination=destination,
            )

    async def _run_with_retries(
        self,
        raw: RawMessage,
        destination: Destination,
    ) -> DispatchOutcome:
        settings = self._context.dispatch_settings
        handler = self._handlers[destination]
        attempts = 0

        async def run_once() -> DispatchOutcome:
            nonlocal attempts
            attempts += 1
            outcome = await handler.handle(raw)
            return outcome.model_copy(
                update={"attempts": attempts, "destination": destination}
            )

        async def sleep_before_retry(delay: float) -> None:
            logger.warning(
                "retry_scheduled",
                attempt=attempts + 1,
                max_attempts=settings.max_attempts,
                delay_seconds=delay,
                correlation_id=raw.correlation_token,
            )
            if self._context.audit_logger:
                await self._context.audit_logger.log_retry_scheduled(
                    user_id=raw.user_id,
                    attempt=attempts + 1,
                    max_attempts=settings.max_attempts,
                    delay_seconds=delay,
                    correlation_id=raw.correlation_token,
                )
            await self._sleep(delay)

        def give_up(retry_state: RetryCallState) -> DispatchOutcome:
            last = retry_state.outcome.result()
            return DispatchOutcome(
                success=False,
                state=DispatchState.FAILED_TERMINAL,
                error_kind=ErrorKind.MAX_RETRIES_EXCEEDED,
                error_message=last.error_message,
                partial_data=last.partial_data,
                attempts=last.attempts,
                process_id=last.process_id,
                destination=destination,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(settings.max_attempts),
            wait=wait_exponential(multiplier=settings.base_delay_seconds),
            retry=retry_if_result(lambda outcome: outcome.retryable),
            sleep=sleep_before_retry,
            retry_error_callback=give_up,
        )
        return await retrying(run_once)

    async def handle_message(self, raw: RawMessage) -> ReplyMessage:
        """
        Distribute a message and format the reply.

        Always returns a ReplyMessage.
        """
        outcome = await self.distribute(raw)
        module_tag = self._handlers[outcome.destination].module_tag
        reply = self._context.formatter.format(outcome, module_tag)

        if reply.error_kind == ErrorKind.FORMAT_ERROR and self._context.audit_logger:
            try:
                await self._context.audit_logger.log(
                    AuditEventBuilder.reply_format_failed(
                        error_message=reply.error or "",
                        correlation_id=raw.correlation_token,
                        process_id=outcome.process_id,
                    )
                )
            except Exception as e:
                logger.error("reply_audit_failed", error=str(e))
        return reply


def create_app_components(
    use_storage: bool = True,
    dictionary: Optional[CategoryDictionaryInterface] = None,
    preferences: Optional[PreferenceStoreInterface] = None,
    sleep: SleepFunc = asyncio.sleep,
) -> tuple[DispatchOrchestrator, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to write entries and audit events to Google
                    Sheets. Set to False for testing without storage.
        dictionary: Category dictionary service (in-memory if omitted)
        preferences: Preference service (in-memory if omitted)
        sleep: Coroutine used for retry back-off

    Returns:
        (orchestrator, sheets_client)
    """
    sheets_client = None
    ledger_store: LedgerStoreInterface = InMemoryLedgerStore()
    audit_logger = AuditLogger()  # Local-only logging

    if use_storage and not validate_all_settings().get("google_sheets"):
        logger.warning("storage_not_configured", section="google_sheets")
        use_storage = False

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            ledger_store = GoogleSheetsLedgerStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            ledger_store = InMemoryLedgerStore()
            audit_logger = AuditLogger()

    context = PipelineContext(
        dictionary=dictionary or InMemoryCategoryDictionary(),
        preferences=preferences or InMemoryPreferenceStore(),
        ledger_store=ledger_store,
        audit_logger=audit_logger,
    )
    return DispatchOrchestrator(context, sleep=sleep), sheets_client
