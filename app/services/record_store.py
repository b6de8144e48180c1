import logging
from datetime import datetime, timezone

import httpx

from app.exceptions.custom import RateLimitError, RecordStoreError
from app.schemas.record_store import CallRecord, Contact

logger = logging.getLogger(__name__)

CONTACTS_TABLE = "contacts"
CALLS_TABLE = "calls"

DEFAULT_TIMEOUT = 10.0

CONTACT_COLUMNS = [
    "id",
    "phone_number",
    "contact_name",
    "priority",
    "call_status",
    "next_call_date",
    "conversation_state",
    "lead_score",
    "call_sid",
    "last_call_at",
    "campaign_tag",
]


class RecordStoreService:
    """Supabase (PostgREST) tables holding contacts and call history."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._client = client
        self._rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._timeout = timeout

    async def _request(self, method: str, table: str, **kwargs) -> httpx.Response:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        try:
            resp = await self._client.request(
                method,
                f"{self._rest_url}/{table}",
                headers=headers,
                timeout=self._timeout,
                **kwargs,
            )
        except httpx.TimeoutException as exc:
            raise RecordStoreError(f"Timed out after {self._timeout:.0f}s") from exc
        except httpx.HTTPError as exc:
            raise RecordStoreError(str(exc) or type(exc).__name__) from exc

        if resp.status_code == 429:
            raise RateLimitError("Record store")
        if resp.status_code >= 400:
            raise RecordStoreError(resp.text, status_code=resp.status_code)
        return resp

    async def search_eligible_contacts(
        self, priority: str, limit: int, now: datetime | None = None
    ) -> list[Contact]:
        """Contacts never called, failed, or whose retry date has passed."""
        if now is None:
            now = datetime.now(timezone.utc)
        params = {
            "select": ",".join(CONTACT_COLUMNS),
            "priority": f"eq.{priority}",
            "or": (
                "(call_status.is.null,call_status.eq.failed,"
                f"next_call_date.lte.{now.isoformat()})"
            ),
            "order": "next_call_date.asc.nullsfirst",
            "limit": str(limit),
        }
        resp = await self._request("GET", CONTACTS_TABLE, params=params)
        contacts = [Contact(**row) for row in resp.json()]
        logger.info(
            "Found %d eligible contacts with priority='%s'", len(contacts), priority
        )
        return contacts

    async def update_contact(self, contact_id: str, fields: dict) -> None:
        await self._request(
            "PATCH",
            CONTACTS_TABLE,
            params={"id": f"eq.{contact_id}"},
            json=fields,
            headers={"Prefer": "return=minimal"},
        )
        logger.info("Updated contact %s", contact_id)

    async def upsert_call(self, record: CallRecord) -> None:
        await self._request(
            "POST",
            CALLS_TABLE,
            params={"on_conflict": "call_sid"},
            json=record.model_dump(mode="json"),
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )
        logger.info("Saved call %s (%s)", record.call_sid, record.call_status)
