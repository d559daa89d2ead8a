"""Cron recurrence parsing and next-fire computation.

Expressions have five fields (minute precision) or six fields with seconds
first, e.g. ``"*/2 * * * * *"`` fires every two seconds. Nicknames such as
``@daily`` are accepted as five-field expressions.

Expressions are evaluated in the job's IANA timezone so that "08:00 daily"
stays at 08:00 local time across DST changes.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from cadence.errors import InvalidSpecError


@dataclass(frozen=True)
class Recurrence:
    expression: str
    timezone: ZoneInfo

    @property
    def has_seconds(self) -> bool:
        return len(self.expression.split()) == 6

    def next_after(self, after: datetime) -> datetime:
        """Return the first occurrence strictly after ``after``, in UTC."""
        base = after.astimezone(self.timezone)
        it = croniter(self.expression, base, second_at_beginning=self.has_seconds)
        return it.get_next(datetime).astimezone(UTC)

    def upcoming(self, after: datetime, count: int) -> list[datetime]:
        fire_times: list[datetime] = []
        current = after
        for _ in range(count):
            current = self.next_after(current)
            fire_times.append(current)
        return fire_times


def parse_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidSpecError(f"Unknown timezone: {name}", field="timezone") from e


def parse_recurrence(expression: str, timezone: str = "UTC") -> Recurrence:
    """Parse a cron expression in the given timezone.

    Raises:
        InvalidSpecError: If the expression or timezone cannot be used.
            ``field`` is set to "time" or "timezone".
    """
    expression = " ".join(expression.split())
    fields = expression.split(" ")
    nickname = len(fields) == 1 and expression.startswith("@")
    if not nickname and len(fields) not in (5, 6):
        raise InvalidSpecError(
            f"Invalid cron expression '{expression}': expected 5 or 6 fields",
            field="time",
        )

    tz = parse_timezone(timezone)

    if not croniter.is_valid(expression, second_at_beginning=len(fields) == 6):
        raise InvalidSpecError(
            f"Invalid cron expression '{expression}'", field="time"
        )

    return Recurrence(expression=expression, timezone=tz)
