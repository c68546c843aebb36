"""
Temporal processing for knowledge entries.

Detects relative, absolute and recurring date references in text, resolves
them against the moment the entry was written, and scores how time-sensitive
the entry is. Everything here is a pure function of its inputs; pass ``now``
explicitly to get reproducible results.
"""

import calendar
import logging
import re
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional

import dateparser

from memory_merge.models import (
    ProcessedTemporalContent,
    RecurringPattern,
    TemporalIntent,
    TemporalReference,
    TimeFrame,
)

logger = logging.getLogger(__name__)


# Map weekday names to numbers (Monday=0, Sunday=6)
WEEKDAY_MAP = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

_WEEKDAYS = "monday|tuesday|wednesday|thursday|friday|saturday|sunday"
_MONTHS = (
    "january|february|march|april|may|june|july|august|september|october|november|december"
)

ABSOLUTE_CONFIDENCE = 0.9
RELATIVE_CONFIDENCE = 0.8

RECURRING_EVENT_WORDS = (
    "birthday",
    "born",
    "anniversary",
    "holiday",
    "christmas",
    "thanksgiving",
    "easter",
    "valentine",
    "halloween",
)

# (pattern, dateparser DATE_ORDER)
ABSOLUTE_PATTERNS = [
    (re.compile(r"\b\d{4}[/\-]\d{1,2}[/\-]\d{1,2}\b"), "YMD"),
    (re.compile(r"\b\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}\b"), "MDY"),
    (re.compile(rf"\b(?:{_MONTHS})\s+\d{{1,2}}(?:st|nd|rd|th)?,?(?:\s*\d{{4}})?\b", re.I), "MDY"),
    (re.compile(rf"\b\d{{1,2}}(?:st|nd|rd|th)?\s+(?:{_MONTHS})(?:\s*\d{{4}})?\b", re.I), "DMY"),
]


def get_next_weekday(current_date: datetime, target_weekday: int, min_days_ahead: int = 1) -> datetime:
    """
    Get the next occurrence of a target weekday.

    Args:
        current_date: The reference date
        target_weekday: Target day (0=Monday, 6=Sunday)
        min_days_ahead: Minimum days in the future (1 = at least tomorrow)

    Returns:
        datetime object for the next occurrence of that weekday
    """
    days_ahead = (target_weekday - current_date.weekday()) % 7
    if days_ahead < min_days_ahead:
        days_ahead += 7
    return current_date + timedelta(days=days_ahead)


def get_previous_weekday(current_date: datetime, target_weekday: int) -> datetime:
    """Most recent occurrence of a weekday strictly before ``current_date``."""
    days_back = (current_date.weekday() - target_weekday) % 7
    if days_back == 0:
        days_back = 7
    return current_date - timedelta(days=days_back)


def add_months(date: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's length."""
    month_index = date.month - 1 + months
    year = date.year + month_index // 12
    month = month_index % 12 + 1
    day = min(date.day, calendar.monthrange(year, month)[1])
    return date.replace(year=year, month=month, day=day)


def format_long_date(date: datetime) -> str:
    """Format as e.g. ``Tuesday, January 16, 2024``."""
    return f"{date:%A}, {date:%B} {date.day}, {date.year}"


def _amount(match: re.Match) -> int:
    return int(match.group(1))


def _weekday(match: re.Match) -> int:
    return WEEKDAY_MAP[match.group(1).lower()]


# Relative patterns, most specific first. Each resolver maps (match, reference) -> date.
RELATIVE_PATTERNS: List[tuple[re.Pattern, Callable[[re.Match, datetime], datetime]]] = [
    (re.compile(r"\bin\s+(\d+)\s+days?\b", re.I), lambda m, ref: ref + timedelta(days=_amount(m))),
    (re.compile(r"\bin\s+(\d+)\s+weeks?\b", re.I), lambda m, ref: ref + timedelta(weeks=_amount(m))),
    (re.compile(r"\bin\s+(\d+)\s+months?\b", re.I), lambda m, ref: add_months(ref, _amount(m))),
    (re.compile(r"\b(\d+)\s+days?\s+ago\b", re.I), lambda m, ref: ref - timedelta(days=_amount(m))),
    (re.compile(r"\b(\d+)\s+weeks?\s+ago\b", re.I), lambda m, ref: ref - timedelta(weeks=_amount(m))),
    (re.compile(r"\b(\d+)\s+months?\s+ago\b", re.I), lambda m, ref: add_months(ref, -_amount(m))),
    (
        re.compile(rf"\bnext\s+({_WEEKDAYS})\b", re.I),
        lambda m, ref: get_next_weekday(ref, _weekday(m), min_days_ahead=1),
    ),
    (
        re.compile(rf"\blast\s+({_WEEKDAYS})\b", re.I),
        lambda m, ref: get_previous_weekday(ref, _weekday(m)),
    ),
    (
        re.compile(rf"\bthis\s+({_WEEKDAYS})\b", re.I),
        lambda m, ref: get_next_weekday(ref, _weekday(m), min_days_ahead=0),
    ),
    (re.compile(r"\bnext\s+week\b", re.I), lambda m, ref: ref + timedelta(days=7)),
    (re.compile(r"\blast\s+week\b", re.I), lambda m, ref: ref - timedelta(days=7)),
    (re.compile(r"\bnext\s+month\b", re.I), lambda m, ref: add_months(ref, 1)),
    (re.compile(r"\blast\s+month\b", re.I), lambda m, ref: add_months(ref, -1)),
    (re.compile(r"\btomorrow\b", re.I), lambda m, ref: ref + timedelta(days=1)),
    (re.compile(r"\byesterday\b", re.I), lambda m, ref: ref - timedelta(days=1)),
    (re.compile(r"\btoday\b", re.I), lambda m, ref: ref),
]

RECURRING_PATTERNS = [
    (re.compile(rf"\bevery\s+({_WEEKDAYS})\b", re.I), "weekly", True),
    (re.compile(r"\bevery\s+day\b", re.I), "daily", False),
    (re.compile(r"\bdaily\b", re.I), "daily", False),
    (re.compile(r"\bevery\s+week\b", re.I), "weekly", False),
    (re.compile(r"\bweekly\b", re.I), "weekly", False),
    (re.compile(r"\bevery\s+month\b", re.I), "monthly", False),
    (re.compile(r"\bmonthly\b", re.I), "monthly", False),
    (re.compile(r"\bevery\s+year\b", re.I), "yearly", False),
    (re.compile(r"\byearly\b", re.I), "yearly", False),
    (re.compile(r"\bannually\b", re.I), "yearly", False),
]

INTENT_PATTERNS: List[tuple[TemporalIntent, re.Pattern]] = [
    (
        "future",
        re.compile(r"\b(will|upcoming|next|future|planning|planned|scheduled|tomorrow|later)\b", re.I),
    ),
    (
        "past",
        re.compile(r"\b(was|did|happened|last|ago|before|yesterday|previous)\b", re.I),
    ),
    (
        "current",
        re.compile(r"\b(today|now|current|currently|this week|this month|recent|recently)\b", re.I),
    ),
]


def _overlaps(span: tuple[int, int], taken: Iterable[tuple[int, int]]) -> bool:
    return any(span[0] < end and start < span[1] for start, end in taken)


def _make_reference(
    original_text: str,
    resolved_date: Optional[datetime],
    temporal_type: str,
    confidence: float,
    storage_date: datetime,
    now: datetime,
    recurring_pattern: Optional[RecurringPattern] = None,
) -> TemporalReference:
    return TemporalReference(
        original_text=original_text,
        resolved_date=resolved_date,
        temporal_type=temporal_type,
        confidence=confidence,
        is_in_past=bool(resolved_date and resolved_date.date() < now.date()),
        days_since_storage=max(0, (now - storage_date).days),
        recurring_pattern=recurring_pattern,
    )


def find_absolute_dates(
    content: str, reference_date: datetime, storage_date: datetime, now: datetime
) -> List[TemporalReference]:
    """Find explicit calendar dates in ``content``."""
    lowered = content.lower()
    is_recurring_event = any(word in lowered for word in RECURRING_EVENT_WORDS)

    results: List[TemporalReference] = []
    taken: List[tuple[int, int]] = []
    for pattern, date_order in ABSOLUTE_PATTERNS:
        for match in pattern.finditer(content):
            if _overlaps(match.span(), taken):
                continue
            parsed = dateparser.parse(
                match.group(0),
                settings={
                    "DATE_ORDER": date_order,
                    "RELATIVE_BASE": reference_date,
                    "PREFER_DAY_OF_MONTH": "first",
                },
            )
            if parsed is None or parsed.year <= 1900:
                logger.debug(f"Skipping unparseable date '{match.group(0)}'")
                continue

            parsed = parsed.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
            recurring = None
            if is_recurring_event:
                recurring = RecurringPattern(
                    frequency="yearly", month=parsed.month, day_of_month=parsed.day
                )
            taken.append(match.span())
            results.append(
                _make_reference(
                    match.group(0), parsed, "absolute", ABSOLUTE_CONFIDENCE, storage_date, now, recurring
                )
            )
    return results


def process_temporal_content(
    content: str,
    reference_date: Optional[datetime] = None,
    storage_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> ProcessedTemporalContent:
    """
    Extract temporal references from text and resolve them to absolute dates.

    Relative expressions are resolved against ``reference_date`` (the moment
    the user wrote the entry) and annotated inline, so "party tomorrow"
    becomes "party tomorrow (Tuesday, January 16, 2024)". An expression that
    is already followed by its annotation is not annotated again.

    Args:
        content: Entry text
        reference_date: Date relative expressions are resolved against (default: now)
        storage_date: When the entry was first stored (default: reference_date)
        now: Current time used for past/future decisions (default: datetime.now())

    Returns:
        ProcessedTemporalContent with references, resolved dates and relevance score
    """
    now = now or datetime.now()
    reference_date = reference_date or now
    storage_date = storage_date or reference_date

    references = find_absolute_dates(content, reference_date, storage_date, now)
    resolved_dates = [ref.resolved_date for ref in references if ref.resolved_date]

    taken: List[tuple[int, int]] = []
    annotations: List[tuple[int, str]] = []

    for pattern, resolve in RELATIVE_PATTERNS:
        for match in pattern.finditer(content):
            if _overlaps(match.span(), taken):
                continue
            taken.append(match.span())
            resolved = resolve(match, reference_date)
            references.append(
                _make_reference(match.group(0), resolved, "relative", RELATIVE_CONFIDENCE, storage_date, now)
            )
            resolved_dates.append(resolved)

            annotation = f" ({format_long_date(resolved)})"
            if not content[match.end():].startswith(annotation):
                annotations.append((match.end(), annotation))

    for pattern, frequency, has_weekday in RECURRING_PATTERNS:
        for match in pattern.finditer(content):
            if _overlaps(match.span(), taken):
                continue
            taken.append(match.span())
            recurring = RecurringPattern(
                frequency=frequency,
                day_of_week=_weekday(match) if has_weekday else None,
            )
            references.append(
                _make_reference(
                    match.group(0),
                    reference_date,
                    "recurring",
                    RELATIVE_CONFIDENCE,
                    storage_date,
                    now,
                    recurring,
                )
            )

    processed = content
    for position, annotation in sorted(annotations, reverse=True):
        processed = processed[:position] + annotation + processed[position:]

    seen = set()
    unique: List[TemporalReference] = []
    for reference in references:
        key = reference.original_text.lower()
        if key not in seen:
            seen.add(key)
            unique.append(reference)

    score = temporal_relevance_score(unique, now)
    if unique:
        logger.debug(
            f"Found {len(unique)} temporal references in '{content[:50]}' (relevance={score:.2f})"
        )

    return ProcessedTemporalContent(
        original_content=content,
        processed_content=processed,
        temporal_info=unique,
        temporal_relevance_score=score,
        contains_temporal_refs=bool(unique),
        resolved_dates=resolved_dates,
    )


def temporal_relevance_score(references: List[TemporalReference], now: Optional[datetime] = None) -> float:
    """
    Score how time-sensitive an entry is, between 0 and 1.

    Future events and recurring events score higher; stale past events
    score lower. Entries without temporal references score 0.
    """
    if not references:
        return 0.0

    now = now or datetime.now()
    total = 0.0
    for reference in references:
        score = reference.confidence
        if reference.resolved_date and reference.resolved_date.date() > now.date():
            score += 0.3
        if reference.recurring_pattern:
            score += 0.2
        if reference.is_in_past and not reference.recurring_pattern:
            if reference.days_since_storage > 30:
                score -= 0.2
            elif reference.days_since_storage > 7:
                score -= 0.1
        total += score

    return max(0.0, min(1.0, total / len(references)))


def is_temporally_relevant(
    references: List[TemporalReference],
    time_frame: TimeFrame = "all",
    include_expired_events: bool = False,
    now: Optional[datetime] = None,
) -> bool:
    """Check whether an entry's temporal references fall inside ``time_frame``."""
    if not references:
        # Non-temporal content is always relevant
        return True

    now = now or datetime.now()
    for reference in references:
        if reference.recurring_pattern:
            return True

        resolved = reference.resolved_date
        if time_frame == "future" and resolved and resolved.date() > now.date():
            return True
        if time_frame == "past" and reference.is_in_past:
            return True
        if time_frame == "current" and resolved and abs((resolved.date() - now.date()).days) <= 7:
            return True
        if time_frame == "all" and (not reference.is_in_past or include_expired_events):
            return True

    return False


def detect_temporal_intent(query: str) -> TemporalIntent:
    """Guess whether a query asks about the future, the past or the present."""
    for intent, pattern in INTENT_PATTERNS:
        if pattern.search(query):
            return intent

    if process_temporal_content(query).contains_temporal_refs:
        return "current"
    return "general"


def matches_temporal_intent(
    references: List[TemporalReference],
    intent: TemporalIntent,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check whether an entry's dates fit the time a query asks about.

    Entries without temporal references always match. Recurring events match
    a future query, and a current query when they come round within a week.
    """
    if intent == "general" or not references:
        return True

    now = now or datetime.now()
    for reference in references:
        if reference.resolved_date is None:
            continue

        if reference.recurring_pattern is not None and intent != "past":
            upcoming = next_occurrence(reference, now)
            if upcoming is not None and (
                intent == "future" or (upcoming.date() - now.date()).days <= 7
            ):
                return True

        days = (reference.resolved_date.date() - now.date()).days
        if intent == "future" and days > 0:
            return True
        if intent == "past" and days < 0:
            return True
        if intent == "current" and abs(days) <= 7:
            return True

    return False


def next_occurrence(reference: TemporalReference, from_date: Optional[datetime] = None) -> Optional[datetime]:
    """Next date a recurring reference happens after ``from_date``."""
    pattern = reference.recurring_pattern
    if pattern is None or reference.resolved_date is None:
        return None

    from_date = from_date or datetime.now()
    if pattern.frequency == "daily":
        return from_date + timedelta(days=1)
    if pattern.frequency == "weekly":
        target = pattern.day_of_week if pattern.day_of_week is not None else from_date.weekday()
        return get_next_weekday(from_date, target, min_days_ahead=1)
    if pattern.frequency == "monthly":
        shifted = add_months(from_date, 1)
        if pattern.day_of_month:
            last_day = calendar.monthrange(shifted.year, shifted.month)[1]
            shifted = shifted.replace(day=min(pattern.day_of_month, last_day))
        return shifted

    # yearly
    if pattern.month and pattern.day_of_month:
        candidate = from_date.replace(
            month=pattern.month,
            day=min(pattern.day_of_month, calendar.monthrange(from_date.year, pattern.month)[1]),
        )
        if candidate.date() <= from_date.date():
            candidate = add_months(candidate, 12)
        return candidate
    return add_months(from_date, 12)


def temporal_context(references: List[TemporalReference], now: Optional[datetime] = None) -> str:
    """Human-readable summary of where an entry's dates sit relative to now."""
    now = now or datetime.now()
    contexts = []
    for reference in references:
        if reference.resolved_date is None:
            continue

        date_str = format_long_date(reference.resolved_date)
        days_from_now = (reference.resolved_date.date() - now.date()).days
        recurring = reference.recurring_pattern

        if reference.is_in_past:
            if recurring:
                text = f'"{reference.original_text}" refers to {date_str} [recurring {recurring.frequency}]'
            else:
                text = f'"{reference.original_text}" referred to {date_str} ({abs(days_from_now)} days ago)'
        else:
            if days_from_now == 0:
                text = f'"{reference.original_text}" refers to today ({date_str})'
            elif days_from_now == 1:
                text = f'"{reference.original_text}" refers to tomorrow ({date_str})'
            else:
                text = f'"{reference.original_text}" refers to {date_str} (in {days_from_now} days)'
            if recurring:
                text += f" [recurring {recurring.frequency}]"
        contexts.append(text)

    return f"Temporal context: {'; '.join(contexts)}" if contexts else ""
