"""Filters raw change notifications down to the tracked policy documents."""

from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import ClassificationError
from shared.models.sync import ChangeStatus, FileChange, PushNotification

DEFAULT_TRACKED_EXTENSIONS = [".md"]
DEFAULT_EXCLUDED_NAMES = ["readme"]
DEFAULT_EXCLUDED_DIRS = ["node_modules", ".git", ".github", "dist", "build", "docs", ".docs"]


class ChangeClassifier:
    """Decides which corpus paths are in scope and turns push payloads into file changes."""

    def __init__(self, helper_config: HelperConfig) -> None:
        self.logging = helper_config.get_logger()
        self._extensions = [
            ext.lower() for ext in helper_config.get_list_val("SYNC_TRACKED_EXTENSIONS", default=DEFAULT_TRACKED_EXTENSIONS)
        ]
        self._excluded_names = [
            name.lower() for name in helper_config.get_list_val("SYNC_EXCLUDED_NAMES", default=DEFAULT_EXCLUDED_NAMES)
        ]
        self._excluded_dirs = {
            d.lower().strip("/") for d in helper_config.get_list_val("SYNC_EXCLUDED_DIRS", default=DEFAULT_EXCLUDED_DIRS)
        }

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def is_tracked(self, path: str) -> bool:
        """Check whether a corpus path belongs to the indexed document set.

        Args:
            path (str): Repository-relative path (e.g. "policies/hr/leave.md").

        Returns:
            bool: True if the path has a tracked extension, no excluded name
                  fragment and no excluded or hidden parent directory.
        """
        lowered = path.strip().lstrip("/").lower()
        if not lowered or not any(lowered.endswith(ext) for ext in self._extensions):
            return False
        if any(fragment in lowered for fragment in self._excluded_names):
            return False
        for directory in lowered.split("/")[:-1]:
            if directory.startswith(".") or directory in self._excluded_dirs:
                return False
        return True

    ##########################################
    ############# CLASSIFICATION #############
    ##########################################

    def classify(self, changes: list[FileChange]) -> list[FileChange]:
        """Keep tracked paths only and de-duplicate them, the last status wins.

        Args:
            changes (list[FileChange]): Raw changes in notification order.

        Returns:
            list[FileChange]: One change per tracked path.
        """
        by_path: dict[str, FileChange] = {}
        for change in changes:
            path = change.path.strip().lstrip("/")
            if not self.is_tracked(path):
                continue
            by_path[path] = FileChange(path=path, status=change.status)
        ignored = len(changes) - len(by_path)
        if ignored:
            self.logging.debug("Change classifier ignored or merged %d of %d change(s).", ignored, len(changes))
        return list(by_path.values())

    def classify_paths(self, paths: list[str]) -> list[str]:
        """Filter a full repository listing down to the tracked paths (de-duplicated)."""
        seen: dict[str, None] = {}
        for path in paths:
            path = path.strip().lstrip("/")
            if self.is_tracked(path):
                seen[path] = None
        return list(seen)

    ##########################################
    ############ PUSH PAYLOADS ###############
    ##########################################

    def parse_push_payload(self, payload: dict) -> PushNotification:
        """Parse a GitHub push webhook payload into a classified notification.

        Changes of every commit are collected in order: added, modified, removed.

        Args:
            payload (dict): The decoded webhook body.

        Returns:
            PushNotification: Target revision, branch and tracked file changes.

        Raises:
            ClassificationError: If the payload lacks a revision or has malformed commits.
        """
        if not isinstance(payload, dict):
            raise ClassificationError("Push payload is not a JSON object.")
        revision = payload.get("after")
        if not revision or not isinstance(revision, str):
            raise ClassificationError("Push payload has no target revision ('after').")
        commits = payload.get("commits") or []
        if not isinstance(commits, list):
            raise ClassificationError("Push payload field 'commits' is not a list.", subject=revision)

        ref = payload.get("ref") or ""
        branch = ref.removeprefix("refs/heads/") if ref.startswith("refs/heads/") else None

        changes: list[FileChange] = []
        for commit in commits:
            if not isinstance(commit, dict):
                raise ClassificationError("Push payload contains a malformed commit.", subject=revision)
            for key, status in (("added", ChangeStatus.ADDED), ("modified", ChangeStatus.MODIFIED), ("removed", ChangeStatus.REMOVED)):
                paths = commit.get(key) or []
                if not isinstance(paths, list):
                    raise ClassificationError(f"Commit field '{key}' is not a list.", subject=revision)
                changes.extend(FileChange(path=str(path), status=status) for path in paths)

        return PushNotification(revision=revision, branch=branch, changes=self.classify(changes))
