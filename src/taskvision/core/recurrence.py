"""Pure recurrence domain logic - no I/O dependencies."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterator

DEFAULT_OCCURRENCES = 10


class InvalidRule(ValueError):
    """Raised when a recurrence configuration is malformed."""

    pass


class RepeatType(Enum):
    DAILY = "daily"
    WEEKDAYS = "weekdays"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"
    UNKNOWN = "unknown"  # Stored type we don't recognise; never matches


class EndType(Enum):
    NEVER = "never"
    AFTER = "after"
    ON_DATE = "on_date"


class ExceptionAction(Enum):
    SKIP = "skip"
    RESCHEDULE = "reschedule"


def to_date(value: date | datetime | str) -> date:
    """Normalize a date-like value to a calendar date (time of day discarded)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value.strip()[:10])
    except (AttributeError, ValueError):
        raise InvalidRule(f"Not a YYYY-MM-DD date: {value!r}")


def day_of_week(d: date) -> int:
    """Day of week with 0=Sunday ... 6=Saturday."""
    return (d.weekday() + 1) % 7


@dataclass(frozen=True)
class RepeatException:
    """An override for one pattern-generated date."""

    original_date: date
    action: ExceptionAction
    new_date: date | None = None
    new_block_id: str | None = None

    def __post_init__(self):
        if self.action == ExceptionAction.RESCHEDULE and self.new_date is None:
            raise InvalidRule(
                f"Reschedule of {self.original_date.isoformat()} requires a new date"
            )
        if self.action == ExceptionAction.SKIP and (
            self.new_date is not None or self.new_block_id is not None
        ):
            raise InvalidRule("Skip exceptions take no new date or block")

    @classmethod
    def from_dict(cls, data: dict) -> "RepeatException":
        """Create from a stored exception document."""
        try:
            action = ExceptionAction(data.get("action"))
        except ValueError:
            raise InvalidRule(f"Unknown exception action: {data.get('action')!r}")

        # Older documents use "date" for the original date
        original = data.get("originalDate") or data.get("date")
        if not original:
            raise InvalidRule("Exception is missing its original date")

        new_date = None
        new_block_id = None
        if action == ExceptionAction.RESCHEDULE:
            if data.get("newDate"):
                new_date = to_date(data["newDate"])
            new_block_id = data.get("newBlockId") or None

        return cls(
            original_date=to_date(original),
            action=action,
            new_date=new_date,
            new_block_id=new_block_id,
        )

    def to_dict(self) -> dict:
        data = {
            "originalDate": self.original_date.isoformat(),
            "action": self.action.value,
        }
        if self.action == ExceptionAction.RESCHEDULE:
            data["newDate"] = self.new_date.isoformat()
            data["newBlockId"] = self.new_block_id
        return data


@dataclass(frozen=True)
class RecurrenceRule:
    """
    How a parent task repeats.

    Immutable: edits (see upsert_exception) return a new rule. The
    exceptions tuple holds at most one entry per original date.
    """

    enabled: bool
    type: RepeatType
    frequency: int = 1
    days_of_week: frozenset[int] = field(default_factory=frozenset)
    day_of_month: int = 1
    end_type: EndType = EndType.NEVER
    occurrences: int | None = None
    end_date: date | None = None
    exceptions: tuple[RepeatException, ...] = ()

    def __post_init__(self):
        if self.frequency < 1:
            raise InvalidRule(f"Frequency must be positive, got {self.frequency}")
        bad_days = [d for d in self.days_of_week if not 0 <= d <= 6]
        if bad_days:
            raise InvalidRule(f"Days of week must be 0-6, got {sorted(bad_days)}")
        if not 1 <= self.day_of_month <= 31:
            raise InvalidRule(f"Day of month must be 1-31, got {self.day_of_month}")
        if self.occurrences is not None and self.occurrences < 1:
            raise InvalidRule(f"Occurrences must be positive, got {self.occurrences}")

    @property
    def max_occurrences(self) -> int | None:
        """Occurrence cap for end_type=after, else None."""
        if self.end_type != EndType.AFTER:
            return None
        return self.occurrences or DEFAULT_OCCURRENCES

    @classmethod
    def from_dict(cls, data: dict) -> "RecurrenceRule":
        """Create from a stored repeatSettings document."""
        try:
            repeat_type = RepeatType(data.get("type"))
        except ValueError:
            repeat_type = RepeatType.UNKNOWN

        try:
            end_type = EndType(data.get("endType") or "never")
        except ValueError:
            raise InvalidRule(f"Unknown end type: {data.get('endType')!r}")

        try:
            frequency = int(data.get("frequency") or 1)
            day_of_month = int(data.get("dayOfMonth") or 1)
            occurrences = int(data["occurrences"]) if data.get("occurrences") else None
            days_of_week = frozenset(int(d) for d in data.get("daysOfWeek") or [])
        except (TypeError, ValueError) as e:
            raise InvalidRule(f"Malformed repeat settings: {e}")

        return cls(
            enabled=bool(data.get("enabled", False)),
            type=repeat_type,
            frequency=frequency,
            days_of_week=days_of_week,
            day_of_month=day_of_month,
            end_type=end_type,
            occurrences=occurrences,
            end_date=to_date(data["endDate"]) if data.get("endDate") else None,
            exceptions=tuple(
                RepeatException.from_dict(e) for e in data.get("exceptions") or []
            ),
        )

    def to_dict(self) -> dict:
        data = {
            "enabled": self.enabled,
            "type": self.type.value,
            "frequency": self.frequency,
            "daysOfWeek": sorted(self.days_of_week),
            "dayOfMonth": self.day_of_month,
            "endType": self.end_type.value,
            "exceptions": [e.to_dict() for e in self.exceptions],
        }
        if self.occurrences is not None:
            data["occurrences"] = self.occurrences
        if self.end_date is not None:
            data["endDate"] = self.end_date.isoformat()
        return data


def matches(d: date, rule: RecurrenceRule, as_of: date | None = None) -> bool:
    """
    Does calendar date d satisfy the rule's pattern?

    daily/custom count whole days from as_of (defaults to today), so the
    result depends on the reference date rather than the rule's creation.
    monthly never clamps: day 31 does not occur in a 30-day month.

    Pure function - no I/O.
    """
    d = to_date(d)
    match rule.type:
        case RepeatType.DAILY | RepeatType.CUSTOM:
            as_of = to_date(as_of) if as_of else date.today()
            return (d - as_of).days % rule.frequency == 0
        case RepeatType.WEEKDAYS:
            return 1 <= day_of_week(d) <= 5
        case RepeatType.WEEKLY:
            return day_of_week(d) in rule.days_of_week
        case RepeatType.MONTHLY:
            return d.day == rule.day_of_month
        case _:
            return False


def iter_dates(
    rule: RecurrenceRule,
    window_start: date,
    window_end: date,
    as_of: date | None = None,
) -> Iterator[date]:
    """
    Lazily yield matching dates in [window_start, window_end], ascending.

    The window is clipped to the rule's end date, and iteration stops after
    max_occurrences matches. Occurrences are counted before exceptions are
    applied. An inverted window yields nothing.
    """
    current = to_date(window_start)
    end = to_date(window_end)
    if rule.end_type == EndType.ON_DATE and rule.end_date is not None:
        end = min(end, rule.end_date)

    # Pin the reference day once so a run spanning midnight stays consistent
    as_of = to_date(as_of) if as_of else date.today()
    limit = rule.max_occurrences
    count = 0

    while current <= end:
        if limit is not None and count >= limit:
            return
        if matches(current, rule, as_of):
            count += 1
            yield current
        current += timedelta(days=1)


def enumerate_dates(
    rule: RecurrenceRule,
    window_start: date,
    window_end: date,
    as_of: date | None = None,
) -> list[date]:
    """Matching dates in the window as a list. See iter_dates."""
    return list(iter_dates(rule, window_start, window_end, as_of))


def resolve_exception(
    d: date,
    exceptions: tuple[RepeatException, ...] | list[RepeatException] | None,
) -> RepeatException | None:
    """Find the exception registered for a pattern-generated date, if any."""
    if not exceptions:
        return None
    d = to_date(d)
    return next((e for e in exceptions if e.original_date == d), None)


def upsert_exception(
    rule: RecurrenceRule,
    original_date: date | str,
    action: ExceptionAction | str,
    new_date: date | str | None = None,
    new_block_id: str | None = None,
) -> RecurrenceRule:
    """
    Return a copy of rule with one exception added or replaced.

    An existing exception for the same original date is replaced in place;
    otherwise the new one is appended. The caller persists the result.

    Raises:
        InvalidRule: unknown action, or reschedule without new_date.
    """
    try:
        action = ExceptionAction(action)
    except ValueError:
        raise InvalidRule(f"Unknown exception action: {action!r}")

    if action == ExceptionAction.RESCHEDULE:
        if not new_date:
            raise InvalidRule("Reschedule requires a new date")
        exception = RepeatException(
            original_date=to_date(original_date),
            action=action,
            new_date=to_date(new_date),
            new_block_id=new_block_id or None,
        )
    else:
        exception = RepeatException(original_date=to_date(original_date), action=action)

    exceptions = list(rule.exceptions)
    index = next(
        (i for i, e in enumerate(exceptions) if e.original_date == exception.original_date),
        None,
    )
    if index is None:
        exceptions.append(exception)
    else:
        exceptions[index] = exception

    return replace(rule, exceptions=tuple(exceptions))
