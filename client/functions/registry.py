"""
Function registry.

Two tables, kept separately:
- declared descriptors: what the remote side is told it may call
- handlers: what actually runs locally, by name

A function may be declared without a handler; invoking it yields an
error result rather than a failure.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Union

from functions.descriptors import FunctionDescriptor

HandlerResult = Union[Mapping[str, Any], Any]
FunctionHandler = Callable[
    [dict[str, Any]],
    Union[HandlerResult, Awaitable[HandlerResult]],
]


class FunctionRegistry:
    """Name-keyed capability table populated at startup."""

    def __init__(self) -> None:
        self._descriptors: dict[str, FunctionDescriptor] = {}
        self._handlers: dict[str, FunctionHandler] = {}

    def declare(
        self,
        descriptor: FunctionDescriptor,
        handler: FunctionHandler | None = None,
    ) -> None:
        """
        Declare a function, optionally with its handler.

        Raises:
            ValueError if the name is already declared.
        """
        if descriptor.name in self._descriptors:
            raise ValueError(f"function {descriptor.name!r} already declared")
        self._descriptors[descriptor.name] = descriptor
        if handler is not None:
            self._handlers[descriptor.name] = handler

    def register_handler(self, name: str, handler: FunctionHandler) -> None:
        """Attach or replace the handler for a name."""
        self._handlers[name] = handler

    def descriptors(self) -> tuple[FunctionDescriptor, ...]:
        """Declared descriptors in declaration order."""
        return tuple(self._descriptors.values())

    def names(self) -> list[str]:
        return list(self._descriptors)

    def get(self, name: str) -> FunctionHandler | None:
        return self._handlers.get(name)

    def __len__(self) -> int:
        return len(self._descriptors)
