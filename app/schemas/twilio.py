from pydantic import BaseModel


class TwilioCall(BaseModel):
    sid: str
    status: str | None = None  # queued | ringing | in-progress | completed | ...
    to: str | None = None
    from_: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> "TwilioCall":
        return cls(
            sid=data["sid"],
            status=data.get("status"),
            to=data.get("to"),
            from_=data.get("from"),
        )
