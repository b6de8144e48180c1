import logging

import httpx

from app.exceptions.custom import RateLimitError, TwilioError
from app.schemas.twilio import TwilioCall

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.twilio.com/2010-04-01/Accounts"

STATUS_CALLBACK_EVENTS = ["initiated", "ringing", "answered", "completed"]


class TwilioService:
    def __init__(
        self,
        client: httpx.AsyncClient,
        account_sid: str,
        auth_token: str,
        from_number: str,
    ):
        self._client = client
        self._auth = (account_sid, auth_token)
        self._calls_url = f"{API_BASE_URL}/{account_sid}/Calls"
        self._from_number = from_number

    async def start_call(
        self, to_number: str, callback_url: str, status_callback_url: str
    ) -> TwilioCall:
        """Place an outbound call leg; Twilio fetches TwiML from *callback_url*."""
        data = {
            "To": to_number,
            "From": self._from_number,
            "Url": callback_url,
            "Method": "POST",
            "StatusCallback": status_callback_url,
            "StatusCallbackEvent": STATUS_CALLBACK_EVENTS,
            "StatusCallbackMethod": "POST",
        }

        logger.info("Starting outbound call to %s", to_number)
        resp = await self._client.post(
            f"{self._calls_url}.json", data=data, auth=self._auth
        )

        if resp.status_code == 429:
            raise RateLimitError("Twilio")
        if resp.status_code >= 400:
            raise TwilioError(resp.text, status_code=resp.status_code)

        call = TwilioCall.from_api(resp.json())
        logger.info("Outbound call started: call_sid=%s", call.sid)
        return call

    async def hangup_call(self, call_sid: str) -> None:
        resp = await self._client.post(
            f"{self._calls_url}/{call_sid}.json",
            data={"Status": "completed"},
            auth=self._auth,
        )

        if resp.status_code == 429:
            raise RateLimitError("Twilio")
        if resp.status_code >= 400:
            raise TwilioError(resp.text, status_code=resp.status_code)

        logger.info("Hung up call %s", call_sid)
