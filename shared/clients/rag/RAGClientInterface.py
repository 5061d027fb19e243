from abc import abstractmethod
from typing import Any
import json

import httpx
from shared.clients.rag.models.SearchHit import SearchHit
from shared.clients.ClientInterface import ClientInterface

from shared.helper.HelperConfig import HelperConfig


class RAGClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_points(self) -> str:
        """
        Returns the endpoint path for points upsert requests (e.g. "/collections/my_col/points").
        """
        pass

    @abstractmethod
    def _get_endpoint_delete_points(self) -> str:
        """
        Returns the endpoint path for deleting points by filter (e.g. "/collections/my_col/points/delete").
        """
        pass

    @abstractmethod
    def _get_endpoint_search(self) -> str:
        """
        Returns the endpoint path for similarity search (e.g. "/collections/my_col/points/search").
        """
        pass

    @abstractmethod
    def _get_endpoint_check_collection_existence(self) -> str:
        """
        Returns the endpoint path for collection existence check requests.
        """
        pass

    @abstractmethod
    def _get_endpoint_create_collection(self) -> str:
        """
        Returns the endpoint path for create collection requests.
        """
        pass

    @abstractmethod
    def _get_endpoint_payload_index(self) -> str:
        """
        Returns the endpoint path for creating a payload field index.
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_search_payload(self, vector: list[float], limit: int, filter: dict | None, score_threshold: float | None) -> dict:
        """
        Builds the backend-specific request payload for a similarity search.

        Args:
            vector (list[float]): The query embedding.
            limit (int): Maximum number of hits.
            filter (dict | None): Payload filter restricting the candidates.
            score_threshold (float | None): Minimum score of returned hits.

        Returns:
            dict: The payload for the search request.
        """
        pass

    @abstractmethod
    def get_delete_payload(self, filter: dict) -> dict:
        """
        Builds the backend-specific request payload for a filter-based delete.
        """
        pass

    @abstractmethod
    def get_payload_index_payload(self, field_name: str, field_schema: str) -> dict:
        """Builds the backend-specific request payload for a payload index."""
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def extract_search_hits(self, raw_response: dict) -> list[SearchHit]:
        """
        Extracts the scored hits from a raw search response, best score first.
        """
        pass

    ##########################################
    ########### FILTER BUILDER ###############
    ##########################################

    @staticmethod
    def match_condition(key: str, value: Any) -> dict:
        return {"key": key, "match": {"value": value}}

    @staticmethod
    def range_condition(key: str, gte: int | float | None = None, lt: int | float | None = None) -> dict:
        bounds = {}
        if gte is not None:
            bounds["gte"] = gte
        if lt is not None:
            bounds["lt"] = lt
        return {"key": key, "range": bounds}

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_existence_check(self) -> bool:
        """Check if the collection exists in the rag backend."""
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_check_collection_existence(), raise_on_error=True)
        return bool(resp.json().get("result", {}).get("exists"))

    async def do_create_collection(self, vector_size: int, distance: str = "Cosine") -> httpx.Response:
        """Create the collection in the rag backend.

        Args:
            vector_size (int): The size of the vectors in the collection.
            distance (str): The distance metric for the vectors.
        """
        return await self.do_request(
            method="PUT",
            json={
                "vectors": {
                    "size": vector_size,
                    "distance": distance}},
            endpoint=self._get_endpoint_create_collection(),
            raise_on_error=True)

    async def do_create_payload_index(self, field_name: str, field_schema: str = "keyword") -> httpx.Response:
        """Create an index on a payload field used for filtering."""
        return await self.do_request(
            method="PUT",
            json=self.get_payload_index_payload(field_name, field_schema),
            endpoint=self._get_endpoint_payload_index(),
            raise_on_error=True)

    async def do_upsert_points(self, points: list[dict[str, Any]]) -> httpx.Response:
        """Upsert points into the rag backend collection.
        Inserts new points or replaces existing ones if a point with the same ID already exists.

        Args:
            points (list[dict[str, Any]]): Points as {"id", "vector", "payload"} dicts.
        """
        return await self.do_request(
            method="PUT",
            content=json.dumps({"points": points}),
            endpoint=self._get_endpoint_points(),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True)

    async def do_delete_points_by_filter(self, filter: dict) -> None:
        """Deletes all points matching the given filter from the RAG backend.

        Args:
            filter (dict): The filter that identifies which points to delete,
                           e.g. {"must": [{"key": "document_id", "match": {"value": "..."}}]}.
        """
        await self.do_request(
            method="POST",
            content=json.dumps(self.get_delete_payload(filter)),
            endpoint=self._get_endpoint_delete_points(),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )

    async def do_search(self, vector: list[float], limit: int, filter: dict | None = None, score_threshold: float | None = None) -> list[SearchHit]:
        """Run a similarity search.

        Args:
            vector (list[float]): The query embedding.
            limit (int): Maximum number of hits.
            filter (dict | None): Optional payload filter.
            score_threshold (float | None): Optional minimum score.

        Returns:
            list[SearchHit]: Hits with id, score and payload, best first.
        """
        resp = await self.do_request(
            method="POST",
            content=json.dumps(self.get_search_payload(vector, limit, filter, score_threshold)),
            endpoint=self._get_endpoint_search(),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
        return self.extract_search_hits(resp.json())

