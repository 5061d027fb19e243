"""Tagged error kinds shared by the sync, retrieval and chat pipelines.

Every failure that crosses a component boundary is one of the BridgeError
subclasses below. Callers branch on ``error.kind`` (or on the class) instead
of inspecting messages.
"""

from enum import Enum


class ErrorKind(str, Enum):
    CLASSIFICATION = "classification"
    FETCH = "fetch"
    EMBEDDING = "embedding"
    INDEX = "index"
    JOB_SETUP = "job_setup"
    MODEL = "model"
    STORE = "store"
    INTERNAL = "internal"


class BridgeError(Exception):
    """Base class of all tagged errors.

    Attributes:
        kind (ErrorKind): The tag of the error.
        subject (str | None): What the error is about (a path, a job id, a chat id...).
    """

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, subject: str | None = None):
        super().__init__(message)
        self.message = message
        self.subject = subject

    def __str__(self) -> str:
        if self.subject:
            return f"[{self.kind.value}] {self.subject}: {self.message}"
        return f"[{self.kind.value}] {self.message}"


class ClassificationError(BridgeError):
    """A change notification could not be parsed."""
    kind = ErrorKind.CLASSIFICATION


class FetchError(BridgeError):
    """Content, listing or revision lookup failed at the content store."""
    kind = ErrorKind.FETCH


class EmbeddingError(BridgeError):
    kind = ErrorKind.EMBEDDING


class VectorIndexError(BridgeError):
    kind = ErrorKind.INDEX


class JobSetupError(BridgeError):
    """The sync job record could not be created or updated."""
    kind = ErrorKind.JOB_SETUP


class ModelError(BridgeError):
    """The answer or summary model call failed."""
    kind = ErrorKind.MODEL


class StoreError(BridgeError):
    kind = ErrorKind.STORE
