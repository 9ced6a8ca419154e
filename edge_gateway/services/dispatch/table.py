"""
Operation Table

Explicit lookup table mapping (version, operation name) to a handler,
populated once at startup. Each version only lists the operations it
implements itself; the dispatcher falls through to older versions for
the rest.

Version: 1.0.0
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional

# Handlers receive the OperationContext and the raw request payload
OperationHandler = Callable[[Any, dict], Awaitable[Any]]


@dataclass(frozen=True)
class RegisteredOperation:
    """One versioned implementation of an operation."""
    name: str
    version: str
    handler: OperationHandler
    write: bool = False


class OperationTable:
    """
    Registry of versioned operation handlers.

    Example:
        >>> table = OperationTable()
        >>> table.register("v1", "get_stores", get_stores_v1)
        >>> table.lookup("v1", "get_stores").handler is get_stores_v1
        True
        >>> table.lookup("v2", "get_stores") is None
        True
    """

    def __init__(self):
        self._entries: dict[tuple[str, str], RegisteredOperation] = {}

    def register(
        self,
        version: str,
        name: str,
        handler: OperationHandler,
        write: bool = False,
    ) -> RegisteredOperation:
        key = (version, name)
        if key in self._entries:
            raise ValueError(f"Operation {name!r} already registered for {version}")
        entry = RegisteredOperation(name=name, version=version, handler=handler, write=write)
        self._entries[key] = entry
        return entry

    def register_many(
        self,
        version: str,
        handlers: dict[str, OperationHandler],
        write_operations: Iterable[str] = (),
    ) -> None:
        writes = set(write_operations)
        for name, handler in handlers.items():
            self.register(version, name, handler, write=name in writes)

    def lookup(self, version: str, name: str) -> Optional[RegisteredOperation]:
        return self._entries.get((version, name))

    def names_for(self, version: str) -> set[str]:
        """Operation names implemented directly by a version."""
        return {name for (v, name) in self._entries if v == version}

    def is_write(self, name: str) -> bool:
        """True if any version registers the operation as a write."""
        return any(entry.write for (_, n), entry in self._entries.items() if n == name)

    def __len__(self) -> int:
        return len(self._entries)
