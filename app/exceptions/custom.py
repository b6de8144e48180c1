class TwilioError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class RecordStoreError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class RateLimitError(Exception):
    def __init__(self, service: str):
        self.service = service
        super().__init__(f"Rate limit exceeded for {service}")


class ConversationNotFoundError(Exception):
    def __init__(self, call_id: str):
        self.call_id = call_id
        super().__init__(f"Conversation {call_id} not found")


class DuplicateConversationError(Exception):
    def __init__(self, call_id: str):
        self.call_id = call_id
        super().__init__(f"Conversation {call_id} already exists")
