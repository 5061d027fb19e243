from abc import abstractmethod
import asyncio

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class ContentClientInterface(ClientInterface):
    """Read access to the versioned document store holding the policy corpus."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.fetch_concurrency = int(helper_config.get_number_val("CONTENT_FETCH_CONCURRENCY", default=5))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "content"

    @abstractmethod
    def get_repository_id(self) -> str:
        """
        Returns the identifier of the corpus repository (e.g. "acme/policies").
        """
        pass

    @abstractmethod
    def get_default_branch(self) -> str:
        """
        Returns the branch that is indexed (e.g. "main").
        """
        pass

    @abstractmethod
    def build_source_url(self, path: str, revision: str) -> str:
        """
        Builds a human-readable link to a file at a revision.

        Args:
            path (str): Repository-relative file path.
            revision (str): Commit sha or branch name.

        Returns:
            str: The link shown next to cited sources.
        """
        pass

    @abstractmethod
    def verify_webhook_signature(self, body: bytes, signature: str | None) -> bool:
        """
        Checks the shared-secret signature of a change notification.

        Args:
            body (bytes): The raw request body as received.
            signature (str | None): The signature header value.

        Returns:
            bool: True if the signature matches.
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_file(self, path: str) -> str:
        """
        Returns the endpoint path for a single file's content (e.g. "/repos/o/r/contents/a.md").
        """
        pass

    @abstractmethod
    def _get_endpoint_tree(self, revision: str) -> str:
        """
        Returns the endpoint path for a recursive file listing at a revision.
        """
        pass

    @abstractmethod
    def _get_endpoint_revision(self, ref: str) -> str:
        """
        Returns the endpoint path that resolves a branch or ref to a commit.
        """
        pass

    ################ PARSER ##################
    @abstractmethod
    def _parse_file_content(self, response: dict) -> str:
        """
        Extracts the decoded file text from a file content response.

        Raises:
            ValueError: If the response carries no decodable content.
        """
        pass

    @abstractmethod
    def _parse_tree(self, response: dict) -> list[str]:
        """
        Extracts all file paths (no directories) from a listing response.
        """
        pass

    @abstractmethod
    def _parse_revision(self, response: dict) -> str:
        """
        Extracts the commit id from a revision response.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_file(self, path: str, revision: str) -> str:
        """Fetch the text of one file at a revision.

        Args:
            path (str): Repository-relative path.
            revision (str): Commit sha or branch name.

        Returns:
            str: The decoded file content.

        Raises:
            Exception: If the request fails or the content cannot be decoded.
        """
        response = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_file(path),
            params={"ref": revision},
            raise_on_error=True,
        )
        return self._parse_file_content(response.json())

    async def do_fetch_files(self, paths: list[str], revision: str) -> dict[str, str | Exception]:
        """Fetch many files with bounded concurrency.

        Args:
            paths (list[str]): Repository-relative paths.
            revision (str): Commit sha or branch name.

        Returns:
            dict[str, str | Exception]: Content per path, or the exception raised for it.
        """
        sem = asyncio.Semaphore(self.fetch_concurrency)

        async def _fetch(path: str) -> str:
            async with sem:
                return await self.do_fetch_file(path, revision)

        results = await asyncio.gather(*[_fetch(p) for p in paths], return_exceptions=True)
        return dict(zip(paths, results))

    async def do_list_files(self, revision: str) -> list[str]:
        """List all file paths of the repository at a revision.

        Raises:
            Exception: If the listing request fails.
        """
        response = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_tree(revision),
            params={"recursive": "1"},
            raise_on_error=True,
        )
        paths = self._parse_tree(response.json())
        self.logging.info("Listed %d file(s) in '%s' at %s.", len(paths), self.get_repository_id(), revision[:12])
        return paths

    async def do_resolve_revision(self, ref: str | None = None) -> str:
        """Resolve a branch (default: the indexed branch) to its current commit id.

        Raises:
            Exception: If the lookup request fails.
        """
        ref = ref or self.get_default_branch()
        response = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_revision(ref),
            raise_on_error=True,
        )
        return self._parse_revision(response.json())
