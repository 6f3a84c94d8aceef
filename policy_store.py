# policy_store.py

import logging
import os
from types import MappingProxyType
from typing import Iterator, Optional

from pydantic import ValidationError

from config import load_config
from errors import ConfigError
from models.policy import Policy, PolicyEntry

logger = logging.getLogger(__name__)


class PolicyStore:
    """
    Read-only table of policies indexed by short repository name.

    Built once before the server accepts traffic; lookups never mutate it, so
    concurrent readers need no locking.
    """

    def __init__(self, policies):
        self._policies = tuple(policies)
        index = {}
        for position, policy in enumerate(self._policies):
            if policy.repo_name in index:
                raise ConfigError(f"Duplicate repo_name '{policy.repo_name}': repo_name must be unique.")
            index[policy.repo_name] = position
        self._index = MappingProxyType(index)

    @classmethod
    def from_entries(cls, entries) -> "PolicyStore":
        if not isinstance(entries, (list, tuple)):
            raise ConfigError("'policies' must be a list of policy entries.")

        policies = []
        for i, raw in enumerate(entries):
            try:
                entry = PolicyEntry.model_validate(raw)
            except ValidationError as e:
                raise ConfigError(f"Invalid policy entry #{i}: {e}") from e
            policies.append(Policy.from_entry(entry))
        return cls(policies)

    @classmethod
    def load(cls, source) -> "PolicyStore":
        """
        Build a store from `source`: a path to a YAML file with a top-level
        `policies` list, a parsed configuration mapping, or a list of entries.

        Raises ConfigError on any problem; no partially usable store is produced.
        """
        if isinstance(source, (str, os.PathLike)):
            source = load_config(os.fspath(source))
        if isinstance(source, dict):
            source = source.get("policies")
        store = cls.from_entries(source)
        logger.info(f"Loaded {len(store)} policies.")
        return store

    def lookup(self, repo_name: str) -> Optional[Policy]:
        position = self._index.get(repo_name)
        if position is None:
            return None
        return self._policies[position]

    @property
    def policies(self):
        return self._policies

    def __len__(self) -> int:
        return len(self._policies)

    def __iter__(self) -> Iterator[Policy]:
        return iter(self._policies)

    def __contains__(self, repo_name) -> bool:
        return repo_name in self._index
