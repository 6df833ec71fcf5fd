"""Local and remote entity identifiers.

An entity created locally carries a :class:`LocalId`. Once a provider has
accepted it, the entity is re-identified by a :class:`RemoteId` whose string
form is ``"<tag>-<remote id>"``. Only registered tags are recognised when
parsing, so a local id that happens to contain a dash stays local.
"""

from dataclasses import dataclass
from typing import Iterable, Union


GOOGLE_TAG = "google"
KNOWN_TAGS = (GOOGLE_TAG,)


@dataclass(frozen=True)
class LocalId:
    """Identifier of an entity that has not been synchronized yet."""

    value: str

    @property
    def is_remote(self) -> bool:
        return False

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class RemoteId:
    """Identifier of an entity known to a provider."""

    provider_tag: str
    remote_id: str

    def __post_init__(self):
        if not self.provider_tag or "-" in self.provider_tag:
            raise ValueError(f"Invalid provider tag: {self.provider_tag!r}")
        if not self.remote_id:
            raise ValueError("Remote id must not be empty")

    @property
    def is_remote(self) -> bool:
        return True

    def __str__(self) -> str:
        return f"{self.provider_tag}-{self.remote_id}"


EntityId = Union[LocalId, RemoteId]


def parse_entity_id(raw: str, tags: Iterable[str] = KNOWN_TAGS) -> EntityId:
    """Parse a stored identifier string.

    Args:
        raw: Identifier as persisted by the local store
        tags: Provider tags to recognise

    Returns:
        RemoteId when ``raw`` starts with a known tag and a non-empty
        remainder, LocalId otherwise
    """
    for tag in tags:
        prefix = f"{tag}-"
        if raw.startswith(prefix) and len(raw) > len(prefix):
            return RemoteId(tag, raw[len(prefix):])
    return LocalId(raw)


def tag_remote(provider_tag: str, remote_id: str) -> RemoteId:
    """Identifier for an entity just created on a provider."""
    return RemoteId(provider_tag, remote_id)
