"""Pure functions for scheduling the next call to a contact.

No I/O, no side effects. Uses the holidays package to keep retries off
weekends and public holidays.
"""

from datetime import date, datetime, timedelta, timezone

import holidays

from app.schemas.conversation import Stage

# Country name (lowercase) → ISO code for holidays library
COUNTRY_HOLIDAYS: dict[str, str] = {
    "ukraine": "UA",
    "poland": "PL",
    "moldova": "MD",
    "kazakhstan": "KZ",
    "georgia": "GE",
    "lithuania": "LT",
    "latvia": "LV",
    "estonia": "EE",
}

REJECTION_COOLDOWN = timedelta(days=30)
MAYBE_LATER_COOLDOWN = timedelta(days=7)
NO_ANSWER_COOLDOWN = timedelta(days=3)
CALLBACK_COOLDOWN = timedelta(days=1)
DEFAULT_COOLDOWN = timedelta(days=14)

# Stages that mean the lead is being worked; no automatic retry
NO_RETRY_STAGES = {
    Stage.interested,
    Stage.discussing_needs,
    Stage.order_process,
    Stage.order_created,
}

UNREACHED_STATUSES = {"no-answer", "busy", "failed", "canceled"}


def retry_offset(stage: Stage, call_status: str | None = None) -> timedelta | None:
    """Return how long to wait before calling again, None for no retry."""
    if call_status in UNREACHED_STATUSES:
        return NO_ANSWER_COOLDOWN
    if stage in NO_RETRY_STAGES:
        return None
    if stage == Stage.rejection:
        return REJECTION_COOLDOWN
    if stage == Stage.callback_requested:
        return CALLBACK_COOLDOWN
    if stage == Stage.maybe_later:
        return MAYBE_LATER_COOLDOWN
    return DEFAULT_COOLDOWN


def is_business_day(day: date, country: str | None = None) -> bool:
    """Mon-Fri and not a national holiday of *country* (when known)."""
    if day.weekday() >= 5:
        return False
    iso_code = COUNTRY_HOLIDAYS.get(country.strip().lower()) if country else None
    if iso_code:
        return day not in holidays.country_holidays(iso_code, years=day.year)
    return True


def roll_to_business_day(when: datetime, country: str | None = None) -> datetime:
    """Move *when* forward day by day until it lands on a business day."""
    candidate = when
    for _ in range(30):  # safety cap
        if is_business_day(candidate.date(), country):
            return candidate
        candidate += timedelta(days=1)
    return candidate


def compute_next_call_date(
    stage: Stage,
    call_status: str | None = None,
    now: datetime | None = None,
    country: str | None = None,
) -> datetime | None:
    """Next eligible call time, or None when the contact should not be retried."""
    offset = retry_offset(stage, call_status)
    if offset is None:
        return None
    if now is None:
        now = datetime.now(timezone.utc)
    return roll_to_business_day(now + offset, country)
