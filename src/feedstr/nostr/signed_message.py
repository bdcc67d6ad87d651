"""Signed Nostr events as immutable values.

Events are built and signed with ``nostr-sdk``; the resulting JSON is the
canonical NIP-01 form, so ``SignedMessage`` is read straight back out of it
and can be handed to relays unchanged.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Sequence

from nostr_sdk import Event, EventBuilder, Kind, Tag, Timestamp

from feedstr.nostr.keys import load_keys

PROFILE_METADATA = 0
NOTE = 1


@dataclass(frozen=True)
class SignedMessage:
    id: str
    author: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...]
    content: str
    sig: str

    @classmethod
    def from_event(cls, event: Event) -> "SignedMessage":
        return cls.from_payload(json.loads(event.as_json()))

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SignedMessage":
        return cls(
            id=payload["id"],
            author=payload["pubkey"],
            created_at=int(payload["created_at"]),
            kind=int(payload["kind"]),
            tags=tuple(tuple(tag) for tag in payload["tags"]),
            content=payload["content"],
            sig=payload["sig"],
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pubkey": self.author,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), ensure_ascii=False)

    def verify(self) -> bool:
        """Check id and signature against the author key."""
        try:
            return Event.from_json(self.to_json()).verify()
        except Exception:
            return False


def _sign(
    secret_key: str,
    kind: int,
    content: str,
    tags: Iterable[Sequence[str]],
    created_at: datetime,
) -> SignedMessage:
    builder = (
        EventBuilder(Kind(kind), content)
        .tags([Tag.parse(list(tag)) for tag in tags])
        .custom_created_at(Timestamp.from_secs(int(created_at.timestamp())))
    )
    event = builder.sign_with_keys(load_keys(secret_key))
    return SignedMessage.from_event(event)


def sign_note(
    secret_key: str,
    content: str,
    tags: Iterable[Sequence[str]],
    created_at: datetime,
) -> SignedMessage:
    return _sign(secret_key, NOTE, content, tags, created_at)


def sign_profile_metadata(
    secret_key: str,
    profile: dict[str, str],
    created_at: datetime,
) -> SignedMessage:
    return _sign(
        secret_key,
        PROFILE_METADATA,
        json.dumps(profile, ensure_ascii=False),
        [],
        created_at,
    )
