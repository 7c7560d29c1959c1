"""
Subject Resolver

Maps the subject a user typed onto one of the ledger's category entries.

DESIGN DECISION: Five tiers are tried strictly in order and the first tier
with a hit wins:

1. Preference - the user picked this category for this term before
2. Exact - the term is a subject name
3. Synonym - the term is a known synonym
4. Compound - the term contains a subject name or synonym
5. Fuzzy - the term is close enough (edit distance) to a name or synonym

A lower tier is never consulted once a higher one hits, so a learned
preference always beats a lucky fuzzy score. There is no default
category: if every tier misses, the resolver returns None and the caller
reports the subject as unknown.

Resolution reads one snapshot of the dictionary and preference store per
call and keeps no state between calls.
"""

from typing import Optional

import structlog

from bookkeeper.config import ResolverSettings, get_settings
from bookkeeper.models.transaction import (
    CategoryEntry,
    MatchMethod,
    ResolutionResult,
    normalize_term,
)
from bookkeeper.resolution.similarity import similarity
from bookkeeper.services.storage import (
    CategoryDictionaryInterface,
    PreferenceStoreInterface,
)


logger = structlog.get_logger(__name__)


class SubjectResolver:
    """
    Five-tier fallback matcher.

    Usage:
        resolver = SubjectResolver(dictionary, preferences)
        result = await resolver.resolve("lunch", user_id="U123")
    """

    def __init__(
        self,
        dictionary: CategoryDictionaryInterface,
        preferences: PreferenceStoreInterface,
        settings: Optional[ResolverSettings] = None,
        ledger_id_template: Optional[str] = None,
    ):
        self._dictionary = dictionary
        self._preferences = preferences
        self._settings = settings or get_settings().resolver
        self._ledger_id_template = (
            ledger_id_template or get_settings().app.ledger_id_template
        )

    def ledger_id_for(self, user_id: str) -> str:
        """Ledger a user's categories live in."""
        return self._ledger_id_template.format(user_id=user_id)

    async def resolve(
        self,
        subject_text: str,
        user_id: str,
        ledger_id: Optional[str] = None,
    ) -> Optional[ResolutionResult]:
        """
        Resolve a subject to a category entry.

        Args:
            subject_text: Subject as typed (the parser already trimmed it)
            user_id: Whose preferences to consult
            ledger_id: Ledger to search; derived from user_id if omitted

        Returns:
            ResolutionResult from the first tier that hit, or None

        Raises:
            StorageError: dictionary or preference store unavailable
        """
        term = normalize_term(subject_text)
        if not term:
            return None

        ledger_id = ledger_id or self.ledger_id_for(user_id)
        entries = await self._dictionary.list_active_entries(ledger_id)

        result = await self._match_preference(term, user_id, entries)
        if result is None:
            for tier in (
                self._match_exact,
                self._match_synonym,
                self._match_compound,
                self._match_fuzzy,
            ):
                result = tier(term, entries)
                if result is not None:
                    break

        if result is None:
            logger.info("subject_unresolved", subject=subject_text, ledger_id=ledger_id)
        else:
            logger.debug(
                "subject_resolved",
                subject=subject_text,
                category_code=result.category_code,
                match_method=result.match_method.value,
                confidence=result.confidence,
            )
        return result

    async def _match_preference(
        self,
        term: str,
        user_id: str,
        entries: list[CategoryEntry],
    ) -> Optional[ResolutionResult]:
        record = await self._preferences.lookup(user_id, term)
        if record is None:
            return None

        for entry in entries:
            if entry.code == record.category_code:
                return ResolutionResult(
                    entry=entry,
                    match_method=MatchMethod.PREFERENCE,
                    confidence=self._settings.preference_confidence,
                    matched_term=record.input_term,
                )

        # Category was removed from the ledger since the preference was learned
        logger.info(
            "stale_preference_ignored",
            user_id=user_id,
            term=term,
            category_code=record.category_code,
        )
        return None

    def _match_exact(
        self,
        term: str,
        entries: list[CategoryEntry],
    ) -> Optional[ResolutionResult]:
        for entry in entries:
            if normalize_term(entry.sub_name) == term:
                return ResolutionResult(
                    entry=entry,
                    match_method=MatchMethod.EXACT,
                    confidence=1.0,
                    matched_term=entry.sub_name,
                )
        return None

    def _match_synonym(
        self,
        term: str,
        entries: list[CategoryEntry],
    ) -> Optional[ResolutionResult]:
        for entry in entries:
            for synonym in entry.synonyms:
                if normalize_term(synonym) == term:
                    return ResolutionResult(
                        entry=entry,
                        match_method=MatchMethod.SYNONYM,
                        confidence=1.0,
                        matched_term=synonym,
                    )
        return None

    def _match_compound(
        self,
        term: str,
        entries: list[CategoryEntry],
    ) -> Optional[ResolutionResult]:
        """
        Containment match: "team lunch" contains "lunch".

        Score is the share of the input covered by the contained term,
        capped per kind. Best score wins, then the longer term, then the
        first one seen.
        """
        min_length = self._settings.compound_min_term_length
        best: Optional[tuple[float, int, CategoryEntry, str]] = None

        for entry in entries:
            candidates = [(entry.sub_name, self._settings.compound_name_cap)]
            candidates.extend(
                (synonym, self._settings.compound_synonym_cap)
                for synonym in entry.synonyms
            )
            for candidate, cap in candidates:
                key = normalize_term(candidate)
                if len(key) < min_length or key not in term:
                    continue
                score = min(len(key) / len(term), cap)
                if best is None or (score, len(key)) > (best[0], best[1]):
                    best = (score, len(key), entry, candidate)

        if best is None:
            return None

        score, _, entry, candidate = best
        return ResolutionResult(
            entry=entry,
            match_method=MatchMethod.COMPOUND,
            confidence=score,
            matched_term=candidate,
        )

    def _match_fuzzy(
        self,
        term: str,
        entries: list[CategoryEntry],
    ) -> Optional[ResolutionResult]:
        best: Optional[tuple[float, CategoryEntry, str]] = None

        for entry in entries:
            for candidate in (entry.sub_name, *entry.synonyms):
                score = similarity(term, normalize_term(candidate))
                if best is None or score > best[0]:
                    best = (score, entry, candidate)

        if best is None or best[0] < self._settings.fuzzy_threshold:
            return None

        score, entry, candidate = best
        return ResolutionResult(
            entry=entry,
            match_method=MatchMethod.FUZZY,
            confidence=score,
            matched_term=candidate,
        )
