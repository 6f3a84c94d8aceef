from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, SecretStr, field_validator

from errors import ConfigError

GITHUB_SSH_HOST = "github.com"


class Service(str, Enum):
    GITHUB = "github"


class Event(str, Enum):
    PUSH = "push"


class PullAction(BaseModel):
    """Fetch `branch` from `remote` and merge it into the repository at `path`."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["Pull"] = "Pull"
    path: str
    remote: str
    branch: str
    ssh_key_path: str
    # When False a divergent history is refused instead of merged.
    allow_merge: bool = True


# Further action kinds join this as a Union discriminated on `kind`.
Action = PullAction


class PolicyEntry(BaseModel):
    """A policy as written in the configuration file."""
    model_config = ConfigDict(extra="forbid")

    service: Service
    repo_name: str
    secret: SecretStr
    event: Event
    action: Action

    @field_validator("service", "event", mode="before")
    @classmethod
    def _lowercase(cls, value):
        return value.lower() if isinstance(value, str) else value


class Policy(BaseModel):
    model_config = ConfigDict(frozen=True)

    secret: SecretStr
    service: Service
    owner: str
    repo_name: str
    full_repo_name: str
    remote_url: str
    event: Event
    action: Action

    @classmethod
    def from_entry(cls, entry: PolicyEntry) -> "Policy":
        names = entry.repo_name.split("/")
        if len(names) != 2 or not all(names):
            raise ConfigError(
                f"Invalid repo_name '{entry.repo_name}': expected 'owner/repo'."
            )
        owner, repo_name = names
        return cls(
            secret=entry.secret,
            service=entry.service,
            owner=owner,
            repo_name=repo_name,
            full_repo_name=entry.repo_name,
            remote_url=f"git@{GITHUB_SSH_HOST}:{entry.repo_name}.git",
            event=entry.event,
            action=entry.action,
        )
