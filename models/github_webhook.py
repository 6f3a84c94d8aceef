from typing import Optional

from pydantic import BaseModel, ConfigDict


class PayloadOwner(BaseModel):
    model_config = ConfigDict(strict=True)

    login: str
    id: int


class PayloadRepository(BaseModel):
    model_config = ConfigDict(strict=True)

    id: Optional[int] = None
    name: str
    full_name: str
    private: bool
    owner: PayloadOwner
    html_url: str
    ssh_url: str


class Payload(BaseModel):
    """The part of a GitHub push payload used to cross-check the route and policy."""
    model_config = ConfigDict(strict=True)

    repository: PayloadRepository
