# authenticator.py
"""
Ordered validation of an inbound webhook.

Each stage either advances or raises. Header, policy and signature failures
raise AuthenticationError, which callers must report uniformly so that a
prober learns nothing about which check failed. Only an unreadable or
malformed body raises RequestFormatError. The body is read and parsed before
the policy lookup, so a malformed body on an unknown route is still reported
as malformed.
"""

import logging
from dataclasses import dataclass
from typing import AsyncIterable, Mapping

from pydantic import ValidationError

import signature
from errors import AuthenticationError, RequestFormatError
from models.github_webhook import Payload
from models.policy import Event, Policy, Service
from models.settings import DEFAULT_MAX_BODY_SIZE
from policy_store import PolicyStore

logger = logging.getLogger(__name__)

USER_AGENT_HEADER = "user-agent"
EVENT_HEADER = "x-github-event"
SIGNATURE_HEADER = "x-hub-signature-256"

SERVICE_AGENT_PREFIXES = {
    Service.GITHUB: "GitHub-Hookshot/",
}

EVENT_NAMES = {
    "push": Event.PUSH,
}


@dataclass(frozen=True)
class AuthenticatedRequest:
    policy: Policy
    event: Event
    payload: Payload
    body: bytes


def detect_service(headers: Mapping[str, str]) -> Service:
    user_agent = headers.get(USER_AGENT_HEADER)
    if user_agent is None:
        raise AuthenticationError("Missing User-Agent header.")
    for service, prefix in SERVICE_AGENT_PREFIXES.items():
        if user_agent.startswith(prefix):
            return service
    raise AuthenticationError(f"Unrecognised User-Agent '{user_agent}'.")


def detect_event(headers: Mapping[str, str]) -> Event:
    name = headers.get(EVENT_HEADER)
    if name is None:
        raise AuthenticationError("Missing X-GitHub-Event header.")
    event = EVENT_NAMES.get(name)
    if event is None:
        raise AuthenticationError(f"Unsupported event '{name}'.")
    return event


def signature_header(headers: Mapping[str, str]) -> str:
    value = headers.get(SIGNATURE_HEADER)
    if value is None:
        raise AuthenticationError("Missing X-Hub-Signature-256 header.")
    return value


async def read_body(stream: AsyncIterable[bytes], max_size: int = DEFAULT_MAX_BODY_SIZE) -> bytes:
    """
    Collect chunks from `stream` until EOF or `max_size` bytes.

    Bytes past the bound are neither read nor kept: the body is truncated.
    """
    body = bytearray()
    try:
        async for chunk in stream:
            body.extend(chunk[:max_size - len(body)])
            if len(body) >= max_size:
                logger.debug(f"Request body reached the {max_size} byte limit; truncating.")
                break
    except OSError as e:
        raise RequestFormatError(f"Couldn't read body data: {e}") from e
    return bytes(body)


def parse_payload(body: bytes) -> Payload:
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise RequestFormatError(f"Body data was invalid utf-8: {e}") from e
    try:
        return Payload.model_validate_json(text)
    except ValidationError as e:
        raise RequestFormatError(f"Invalid structure or form of request body: {e}") from e


async def authenticate(
        repo_name: str,
        headers: Mapping[str, str],
        body_stream: AsyncIterable[bytes],
        store: PolicyStore,
        max_body_size: int = DEFAULT_MAX_BODY_SIZE,
) -> AuthenticatedRequest:
    """Run every check in order and return the request bound to its policy."""
    headers = {key.lower(): value for key, value in headers.items()}

    service = detect_service(headers)
    event = detect_event(headers)
    signature_value = signature_header(headers)

    body = await read_body(body_stream, max_body_size)
    payload = parse_payload(body)

    policy = store.lookup(repo_name)
    if policy is None:
        raise AuthenticationError(f"No matching policy for '{repo_name}'.")

    if policy.service != service:
        raise AuthenticationError("Service doesn't match policy.")

    if payload.repository.name != repo_name:
        raise AuthenticationError("Endpoint doesn't match payload repository name.")

    secret = policy.secret.get_secret_value().encode("utf-8")
    if not signature.verify(signature_value, secret, body):
        raise AuthenticationError("HMAC signature is invalid.")

    if policy.event != event:
        raise AuthenticationError("Event doesn't match policy.")

    return AuthenticatedRequest(policy=policy, event=event, payload=payload, body=body)
