"""
Events produced by StorageEngine.open.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from .base import Connection


@dataclass(frozen=True)
class UpgradeNeeded:
    """The stored version is older than the requested one; an upgrade transaction is open."""

    connection: "Connection"
    old_version: int
    new_version: int


@dataclass(frozen=True)
class Opened:
    """The database is open at the requested version."""

    connection: "Connection"


@dataclass(frozen=True)
class OpenFailed:
    """The database could not be opened."""

    error: BaseException


OpenEvent = Union[UpgradeNeeded, Opened, OpenFailed]
