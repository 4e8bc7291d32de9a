"""
Function descriptors declared to the remote service at session start.

A descriptor is the only thing the remote model knows about a local
function: its name, what it does, and which arguments it takes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

ParameterType = Literal["string", "number", "integer", "boolean", "object", "array"]


@dataclass(frozen=True)
class ParameterSpec:
    """One named argument of a declared function."""
    name: str
    type: ParameterType
    description: str = ""
    required: bool = False

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "required": self.required,
        }


@dataclass(frozen=True)
class FunctionDescriptor:
    """
    Declared remote-invocable function.

    Names are unique within one session's function set.
    """
    name: str
    description: str
    parameters: tuple[ParameterSpec, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("function name must be non-empty")
        seen: set[str] = set()
        for p in self.parameters:
            if p.name in seen:
                raise ValueError(f"duplicate parameter {p.name!r} in {self.name!r}")
            seen.add(p.name)

    @property
    def required_parameters(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.parameters if p.required)

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": [p.to_wire() for p in self.parameters],
        }
