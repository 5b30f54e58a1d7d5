"""
Migration handlers: per-version upgrade procedures.

A handler runs inside the engine's upgrade transaction and receives the
upgrading connection. It must finish its structural changes before returning.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, List

from .errors import DeclarationError


@dataclass(frozen=True)
class MigrationHandler:
    version: int
    procedure: Callable[[Any], Any]

    def __post_init__(self):
        if isinstance(self.version, bool) or not isinstance(self.version, int) or self.version < 1:
            raise DeclarationError(f"Migration version must be a positive integer, got {self.version!r}")
        if not callable(self.procedure):
            raise DeclarationError(f"Migration procedure must be callable: {self.procedure!r}")
        if inspect.iscoroutinefunction(self.procedure):
            raise DeclarationError(
                f"Migration procedure {self.name} is async; upgrade procedures run synchronously"
            )

    @property
    def name(self) -> str:
        return getattr(self.procedure, "__name__", repr(self.procedure))

    def handle(self, connection) -> None:
        self.procedure(connection)


class MigrationRegistry:
    """
    Ordered set of migration handlers.

    Usage:
        migrations = MigrationRegistry()

        @migrations.register(2)
        def add_email_index(connection):
            ...

        Database("app", 2, stores, migrations)
    """

    def __init__(self, handlers: Iterable[MigrationHandler] = ()):
        self._handlers: List[MigrationHandler] = list(handlers)

    def add(self, version: int, procedure: Callable[[Any], Any]) -> MigrationHandler:
        handler = MigrationHandler(version, procedure)
        self._handlers.append(handler)
        return handler

    def register(self, version: int):
        """Decorator form of add; returns the function unchanged."""
        def decorator(procedure):
            self.add(version, procedure)
            return procedure
        return decorator

    def handlers_for(self, version: int) -> List[MigrationHandler]:
        return [handler for handler in self._handlers if handler.version == version]

    def versions(self) -> List[int]:
        return sorted({handler.version for handler in self._handlers})

    def __iter__(self) -> Iterator[MigrationHandler]:
        return iter(list(self._handlers))

    def __len__(self):
        return len(self._handlers)
