"""
Visibility scopes for ratings.

A scope is the dimension ratings are aggregated or filtered along:
``public``, ``group:<id>`` or ``user:<id>``. This module has no Django
model imports so the client package can share it.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID


class ScopeKind:
    PUBLIC = 'public'
    GROUP = 'group'
    USER = 'user'

    ALL = (PUBLIC, GROUP, USER)


@dataclass(frozen=True)
class Scope:
    kind: str
    id: Optional[UUID] = None

    def __post_init__(self):
        if self.kind not in ScopeKind.ALL:
            raise ValueError(f"Unknown scope kind: {self.kind!r}")
        if self.kind == ScopeKind.PUBLIC and self.id is not None:
            raise ValueError("Public scope takes no id")
        if self.kind != ScopeKind.PUBLIC and self.id is None:
            raise ValueError(f"{self.kind} scope requires an id")

    @classmethod
    def public(cls) -> 'Scope':
        return cls(ScopeKind.PUBLIC)

    @classmethod
    def group(cls, group_id) -> 'Scope':
        return cls(ScopeKind.GROUP, _as_uuid(group_id))

    @classmethod
    def user(cls, user_id) -> 'Scope':
        return cls(ScopeKind.USER, _as_uuid(user_id))

    @classmethod
    def parse(cls, text: str) -> 'Scope':
        """
        Parse ``public``, ``group:<uuid>`` or ``user:<uuid>``.

        Raises:
            ValueError: On any other input
        """
        text = (text or '').strip()
        if text == ScopeKind.PUBLIC:
            return cls.public()

        kind, sep, raw_id = text.partition(':')
        if not sep or kind not in (ScopeKind.GROUP, ScopeKind.USER):
            raise ValueError(f"Invalid scope: {text!r}")
        return cls(kind, _as_uuid(raw_id))

    @property
    def is_public(self) -> bool:
        return self.kind == ScopeKind.PUBLIC

    @property
    def group_id(self) -> Optional[UUID]:
        """Group key a submission in this scope is stored under."""
        return self.id if self.kind == ScopeKind.GROUP else None

    def __str__(self):
        if self.is_public:
            return ScopeKind.PUBLIC
        return f"{self.kind}:{self.id}"


def _as_uuid(value) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise ValueError(f"Invalid scope id: {value!r}")
