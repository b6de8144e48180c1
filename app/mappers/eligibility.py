from datetime import datetime, timezone

from app.schemas.record_store import Contact

RETRYABLE_STATUSES = {None, "", "failed"}


def is_eligible(contact: Contact, priority: str, now: datetime | None = None) -> bool:
    """A contact may be dialed when it was never called, its last call failed,
    or its retry date has passed; and only within the requested priority."""
    if contact.priority != priority:
        return False
    if contact.call_status in RETRYABLE_STATUSES:
        return True
    if contact.next_call_date is None:
        return False
    if now is None:
        now = datetime.now(timezone.utc)
    next_call = contact.next_call_date
    if next_call.tzinfo is None:
        next_call = next_call.replace(tzinfo=timezone.utc)
    return next_call <= now
