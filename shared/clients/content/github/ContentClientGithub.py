import base64
import hashlib
import hmac
from urllib.parse import quote

from shared.clients.content.ContentClientInterface import ContentClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class ContentClientGithub(ContentClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="https://api.github.com", val_type="string")
        self._web_url = self.get_config_val("WEB_URL", default="https://github.com", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._repository = self.get_config_val("REPOSITORY", default=None, val_type="string").strip("/")
        self._default_branch = self.get_config_val("DEFAULT_BRANCH", default="main", val_type="string")
        self._webhook_secret = self.get_config_val("WEBHOOK_SECRET", default=None, val_type="string")
        if self._repository.count("/") != 1:
            raise ValueError(f"CONTENT_GITHUB_REPOSITORY must look like 'owner/repo', got '{self._repository}'.")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Github"

    def get_repository_id(self) -> str:
        return self._repository

    def get_default_branch(self) -> str:
        return self._default_branch

    def build_source_url(self, path: str, revision: str) -> str:
        return f"{self._web_url.rstrip('/')}/{self._repository}/blob/{revision}/{quote(path, safe='/')}"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://api.github.com"),
            EnvConfig(env_key="WEB_URL", val_type="string", default="https://github.com"),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="REPOSITORY", val_type="string", default=None),
            EnvConfig(env_key="DEFAULT_BRANCH", val_type="string", default="main"),
            EnvConfig(env_key="WEBHOOK_SECRET", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def verify_webhook_signature(self, body: bytes, signature: str | None) -> bool:
        # GitHub sends "sha256=<hexdigest>" in X-Hub-Signature-256
        if not signature or not signature.startswith("sha256="):
            return False
        expected = hmac.new(self._webhook_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(f"sha256={expected}", signature.strip())

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return f"/repos/{self._repository}"

    def _get_endpoint_file(self, path: str) -> str:
        return f"/repos/{self._repository}/contents/{quote(path.lstrip('/'), safe='/')}"

    def _get_endpoint_tree(self, revision: str) -> str:
        return f"/repos/{self._repository}/git/trees/{revision}"

    def _get_endpoint_revision(self, ref: str) -> str:
        return f"/repos/{self._repository}/commits/{quote(ref, safe='')}"

    ##########################################
    ############### PARSER ###################
    ##########################################

    def _parse_file_content(self, response: dict) -> str:
        if response.get("type") not in (None, "file"):
            raise ValueError(f"Path '{response.get('path')}' is a {response.get('type')}, not a file.")
        if response.get("encoding") != "base64" or response.get("content") is None:
            raise ValueError(f"File '{response.get('path')}' has no inline base64 content (encoding={response.get('encoding')}).")
        return base64.b64decode(response["content"]).decode("utf-8")

    def _parse_tree(self, response: dict) -> list[str]:
        if response.get("truncated"):
            self.logging.warning("GitHub tree listing for '%s' is truncated, some files will be missing.", self._repository)
        return [entry["path"] for entry in response.get("tree", []) if entry.get("type") == "blob" and entry.get("path")]

    def _parse_revision(self, response: dict) -> str:
        sha = response.get("sha")
        if not sha:
            raise ValueError("GitHub commit response does not contain a sha.")
        return sha
