"""Target database identities and per-request routing contexts."""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import SplitResult, urlsplit

from pgportal.errors import RoutingError
from pgportal.policy.permissions import Grant

_SCHEMES = frozenset({"postgres", "postgresql"})


@dataclass(frozen=True)
class TargetIdentity:
    """Address, credentials and database name of one PostgreSQL target.

    The raw DSN is kept for connecting but never rendered: ``str()`` and
    ``repr()`` only show the credential-free display form.
    """

    dsn: str = field(repr=False)
    host: str | None
    port: int | None
    database: str | None

    @classmethod
    def parse(cls, dsn: str) -> TargetIdentity:
        """Parse and validate a ``postgres://`` or ``postgresql://`` DSN.

        Raises:
            RoutingError: If the DSN is malformed or not a PostgreSQL URL.
        """
        text = (dsn or "").strip()
        if not text:
            raise RoutingError("Database URL is empty")

        try:
            parts = urlsplit(text)
            port = parts.port
        except ValueError as exc:
            raise RoutingError(f"Malformed database URL: {exc}") from exc

        if parts.scheme.lower() not in _SCHEMES:
            raise RoutingError(
                f"Unsupported database URL scheme {parts.scheme!r}; expected postgres:// or postgresql://"
            )

        database = parts.path.lstrip("/") or None
        if not parts.hostname and not database:
            raise RoutingError("Database URL must name a host or a database")

        return cls(dsn=text, host=parts.hostname, port=port, database=database)

    @property
    def display_url(self) -> str:
        """DSN with credentials and query removed, scheme normalized to ``postgres:``.

        Always ends with a slash so table paths can be appended.
        """
        netloc = self.host or ""
        if self.host and ":" in self.host:
            netloc = f"[{self.host}]"
        if self.port is not None:
            netloc = f"{netloc}:{self.port}"
        path = f"/{self.database}/" if self.database else "/"
        return SplitResult("postgres", netloc, path, "", "").geturl()

    def __str__(self) -> str:
        return self.display_url


@dataclass(frozen=True)
class RoutingContext:
    """The (target, grant) pair a single request executes against."""

    target: TargetIdentity
    grant: Grant

    def with_target(self, target: TargetIdentity) -> RoutingContext:
        return RoutingContext(target=target, grant=self.grant)
