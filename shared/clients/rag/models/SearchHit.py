from pydantic import BaseModel


class SearchHit(BaseModel):
    """A single scored point returned by a similarity search.

    Attributes:
        id:      Point id in the backend.
        score:   Similarity score, higher is better.
        payload: The point's stored payload (see VectorPoint).
    """

    id: str
    score: float
    payload: dict = {}
