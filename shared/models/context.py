from uuid import uuid4

from pydantic import BaseModel, Field


class RequestContext(BaseModel):
    """Per-call values threaded explicitly through the answer and chat pipelines.

    Attributes:
        correlation_id: Id used to correlate the log lines of one call.
        chat_id:        The session the call belongs to.
    """

    correlation_id: str = Field(default_factory=lambda: uuid4().hex)
    chat_id: str

    @classmethod
    def for_chat(cls, chat_id: str, correlation_id: str | None = None) -> "RequestContext":
        if correlation_id:
            return cls(chat_id=chat_id, correlation_id=correlation_id)
        return cls(chat_id=chat_id)
