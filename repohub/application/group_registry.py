import logging
import uuid
from typing import List, Optional

from repohub.domain.exceptions import DuplicateGroupError, InvalidGroupNameError, PersistenceError, SchemaError
from repohub.domain.models import RepoGroup, RepoId, StoreState
from repohub.domain.schema import decode_groups, encode_groups
from repohub.infrastructure.storage import GROUPS_KEY, KeyValueStore

logger = logging.getLogger(__name__)


class GroupRegistry:
    """
    User-defined, mutually exclusive groups of repository ids.

    Every mutation is written to storage before returning. A repository id is
    a member of at most one group at any time.
    """

    def __init__(self, storage: KeyValueStore, state: StoreState):
        self.storage = storage
        self.state = state

    def load(self) -> List[RepoGroup]:
        try:
            raw = self.storage.get(GROUPS_KEY)
            groups = decode_groups(raw) if raw is not None else []
        except (PersistenceError, SchemaError) as e:
            logger.error(f"Error loading groups: {e}")
            groups = []

        self.state.groups = self._normalize(groups)
        return list(self.state.groups)

    @staticmethod
    def _normalize(groups: List[RepoGroup]) -> List[RepoGroup]:
        # Stored data may predate the one-group-per-repo rule; first claim wins.
        claimed = set()
        for group in groups:
            kept = []
            for repo_id in group.repo_ids:
                if repo_id in claimed:
                    logger.warning(f"Dropping repository {repo_id} from group '{group.name}': already grouped.")
                    continue
                claimed.add(repo_id)
                kept.append(repo_id)
            group.repo_ids = kept
        return groups

    def _save(self) -> None:
        try:
            self.storage.set(GROUPS_KEY, encode_groups(self.state.groups))
        except PersistenceError as e:
            logger.error(f"Error saving groups: {e}")

    def find(self, group_id: str) -> Optional[RepoGroup]:
        return next((g for g in self.state.groups if g.id == group_id), None)

    def add_group(self, name: str) -> RepoGroup:
        trimmed = name.strip()
        if not trimmed:
            raise InvalidGroupNameError("Group name cannot be empty.")
        if any(g.name.lower() == trimmed.lower() for g in self.state.groups):
            raise DuplicateGroupError(f"Group '{trimmed}' already exists.")

        group = RepoGroup(id=uuid.uuid4().hex, name=trimmed)
        self.state.groups.append(group)
        self._save()
        return group

    def delete_group(self, group_id: str) -> None:
        self.state.groups = [g for g in self.state.groups if g.id != group_id]
        self._save()

    def add_repo_to_group(self, group_id: str, repo_id: RepoId) -> None:
        group = self.find(group_id)
        if group is None or repo_id in group.repo_ids:
            return

        for other in self.state.groups:
            if other.id != group_id and repo_id in other.repo_ids:
                other.repo_ids = [rid for rid in other.repo_ids if rid != repo_id]
        group.repo_ids.append(repo_id)
        self._save()

    def remove_repo_from_group(self, group_id: str, repo_id: RepoId) -> None:
        group = self.find(group_id)
        if group is None or repo_id not in group.repo_ids:
            return
        group.repo_ids = [rid for rid in group.repo_ids if rid != repo_id]
        self._save()

    def group_id_of(self, repo_id: RepoId) -> Optional[str]:
        for group in self.state.groups:
            if repo_id in group.repo_ids:
                return group.id
        return None
