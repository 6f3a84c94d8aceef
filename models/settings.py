from typing import List, Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_MAX_BODY_SIZE = 10 * 1024


class GitModule(BaseModel):
    """Mounts the repository sync webhook under `mount_path`."""
    kind: Literal["git"] = "git"
    mount_path: str = "/git"

    @field_validator("mount_path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        return f"/{value.strip('/')}"


class SyncSettings(BaseModel):
    timeout: float = Field(default=120, gt=0)
    committer_name: str = "HookSync"
    committer_email: str = "hooksync@localhost"


class ServerSettings(BaseModel):
    address: str = "localhost"
    port: int = 7267
    url_base: str = ""
    debug: bool = False
    max_body_size: int = Field(default=DEFAULT_MAX_BODY_SIZE, gt=0)
    modules: List[GitModule] = Field(default_factory=list)
    sync: SyncSettings = Field(default_factory=SyncSettings)

    @field_validator("url_base")
    @classmethod
    def _normalise_url_base(cls, value: str) -> str:
        value = value.strip("/")
        return f"/{value}" if value else ""

    def prepend_url_base(self, url: str) -> str:
        """Correct `url` for a reverse proxy serving the application under a path."""
        return f"{self.url_base}{url}"
