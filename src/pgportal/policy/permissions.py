"""Permission grants bound to a session.

A grant is a non-empty, ordered set drawn from ``read``, ``ddl`` and ``dml``.
Parsing is all-or-nothing: one bad token rejects the whole grant.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from pgportal.errors import GrantError


class Permission(str, Enum):
    read = "read"
    ddl = "ddl"
    dml = "dml"


_CANONICAL_ORDER: tuple[Permission, ...] = (Permission.read, Permission.ddl, Permission.dml)
_VALID_NAMES = ", ".join(p.value for p in _CANONICAL_ORDER)


@dataclass(frozen=True)
class Grant:
    permissions: tuple[Permission, ...]

    def __post_init__(self) -> None:
        if not self.permissions:
            raise GrantError("A permission grant cannot be empty")
        ordered = tuple(p for p in _CANONICAL_ORDER if p in self.permissions)
        object.__setattr__(self, "permissions", ordered)

    @classmethod
    def of(cls, permissions: Iterable[Permission | str]) -> Grant:
        return cls(tuple(Permission(p) for p in permissions))

    @classmethod
    def read_only(cls) -> Grant:
        return cls((Permission.read,))

    @classmethod
    def parse(cls, raw: str | None) -> Grant:
        """Parse a comma-separated permission list such as ``"read,dml"``.

        Absent or blank input defaults to read-only.

        Raises:
            GrantError: If any token is not a known permission.
        """
        if raw is None or not raw.strip():
            return cls.read_only()

        seen: list[Permission] = []
        for token in raw.split(","):
            name = token.strip().lower()
            try:
                permission = Permission(name)
            except ValueError:
                raise GrantError(
                    f"Invalid permission: {name}. Valid permissions are: {_VALID_NAMES}"
                ) from None
            if permission not in seen:
                seen.append(permission)
        return cls(tuple(seen))

    @property
    def is_read_only(self) -> bool:
        return self.permissions == (Permission.read,)

    def describe(self) -> str:
        return ", ".join(p.value for p in self.permissions)

    def __contains__(self, item: object) -> bool:
        return item in self.permissions

    def __iter__(self) -> Iterator[Permission]:
        return iter(self.permissions)

    def __len__(self) -> int:
        return len(self.permissions)
