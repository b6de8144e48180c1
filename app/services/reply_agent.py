import logging

import httpx

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Простите, у меня возникла небольшая заминка. Повторите, пожалуйста, ваш вопрос."

DEFAULT_TIMEOUT = 15.0

_REPLY_KEYS = ("output", "response", "text", "message")


class ReplyAgentService:
    """Client for the n8n reply-generation webhook.

    Never raises: timeouts, HTTP errors and empty answers all degrade to
    ``FALLBACK_REPLY`` so the caller always hears something.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        webhook_url: str,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._client = client
        self._url = webhook_url
        self._timeout = timeout

    async def generate_reply(
        self, utterance: str, session_id: str, phone: str, name: str
    ) -> str:
        payload = {
            "message": utterance,
            "sessionId": session_id,
            "phone": phone,
            "name": name,
        }
        try:
            resp = await self._client.post(self._url, json=payload, timeout=self._timeout)
        except httpx.TimeoutException:
            logger.warning("Reply agent timed out after %.0fs (session %s)", self._timeout, session_id)
            return FALLBACK_REPLY
        except httpx.HTTPError as exc:
            logger.warning("Reply agent request failed (session %s): %s", session_id, exc)
            return FALLBACK_REPLY

        if resp.status_code >= 400:
            logger.warning(
                "Reply agent returned %d (session %s): %s",
                resp.status_code, session_id, resp.text[:200],
            )
            return FALLBACK_REPLY

        reply = self._extract_reply(resp)
        if not reply:
            logger.warning("Reply agent returned an empty answer (session %s)", session_id)
            return FALLBACK_REPLY
        return reply

    @staticmethod
    def _extract_reply(resp: httpx.Response) -> str:
        try:
            data = resp.json()
        except ValueError:
            return resp.text.strip()
        return ReplyAgentService._reply_from_json(data)

    @staticmethod
    def _reply_from_json(data) -> str:
        # n8n wraps single items in a list
        if isinstance(data, list):
            data = data[0] if data else {}
        if isinstance(data, str):
            return data.strip()
        if isinstance(data, dict):
            for key in _REPLY_KEYS:
                value = data.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
        return ""
