"""Snapshot diffing for grouped collections.

Only additions are detected: a group's previous id set is subtracted from its
current one, and groups that disappeared are ignored.
"""

import json
import logging
from typing import Iterable, Mapping, Tuple

from leadwatch.db.models import AssignedItem
from leadwatch.db.repository import PersistentStore

logger = logging.getLogger(__name__)

GROUP_SEPARATOR = "||"


def group_key(batch: str, sheet: str) -> str:
    return f"{batch}{GROUP_SEPARATOR}{sheet}"


def split_group_key(key: str) -> Tuple[str, str]:
    batch, _, sheet = key.partition(GROUP_SEPARATOR)
    return batch, sheet


def group_by_batch_sheet(items: Iterable[AssignedItem]) -> dict[str, set[str]]:
    """Group item ids by batch/sheet, skipping items without an id."""
    groups: dict[str, set[str]] = {}
    for item in items:
        ids = groups.setdefault(group_key(item.batch, item.sheet), set())
        if item.id:
            ids.add(item.id)
    return groups


def diff(
    previous: Mapping[str, Iterable[str]],
    current: Mapping[str, Iterable[str]],
) -> dict[str, set[str]]:
    """Get the ids added to each group since the previous snapshot.

    Groups with no additions are left out of the result.
    """
    added: dict[str, set[str]] = {}
    for group, ids in current.items():
        new_ids = set(ids) - set(previous.get(group, ()))
        if new_ids:
            added[group] = new_ids
    return added


class SnapshotStore:
    """Last-seen group snapshot for a principal."""

    def __init__(self, store: PersistentStore, principal_id: str):
        self.store = store
        self.principal_id = principal_id

    @property
    def key(self) -> str:
        return f"snapshot:{self.principal_id}"

    async def load(self) -> dict[str, set[str]]:
        raw = await self.store.get(self.key)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning(f"Snapshot for {self.principal_id} is not valid JSON, starting empty")
            return {}
        if not isinstance(data, dict):
            return {}
        return {group: set(ids or []) for group, ids in data.items()}

    async def save(self, current: Mapping[str, Iterable[str]]) -> None:
        """Replace the stored snapshot with current."""
        data = {group: sorted(ids) for group, ids in current.items()}
        await self.store.set(self.key, json.dumps(data))
