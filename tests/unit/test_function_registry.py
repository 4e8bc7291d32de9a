# pylint: disable=missing-module-docstring,missing-function-docstring
import pytest

from functions.descriptors import FunctionDescriptor, ParameterSpec
from functions.registry import FunctionRegistry


def descriptor(name: str = "getWeather") -> FunctionDescriptor:
    return FunctionDescriptor(
        name=name,
        description="Get current weather information for a specific city",
        parameters=(
            ParameterSpec("city", "string", "City name", required=True),
            ParameterSpec("units", "string", "Temperature units"),
        ),
    )


# ---------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------

def test_descriptor_wire_shape():
    assert descriptor().to_wire() == {
        "name": "getWeather",
        "description": "Get current weather information for a specific city",
        "parameters": [
            {"name": "city", "type": "string", "description": "City name", "required": True},
            {"name": "units", "type": "string", "description": "Temperature units", "required": False},
        ],
    }


def test_required_parameters():
    assert descriptor().required_parameters == ("city",)


def test_empty_name_rejected():
    with pytest.raises(ValueError):
        FunctionDescriptor(name="", description="nothing")


def test_duplicate_parameter_rejected():
    with pytest.raises(ValueError):
        FunctionDescriptor(
            name="f",
            description="dup",
            parameters=(ParameterSpec("a", "string"), ParameterSpec("a", "number")),
        )


# ---------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------

def test_declaration_order_is_preserved():
    registry = FunctionRegistry()
    for name in ("c", "a", "b"):
        registry.declare(descriptor(name))

    assert registry.names() == ["c", "a", "b"]
    assert [d.name for d in registry.descriptors()] == ["c", "a", "b"]
    assert len(registry) == 3


def test_duplicate_declaration_rejected():
    registry = FunctionRegistry()
    registry.declare(descriptor())

    with pytest.raises(ValueError):
        registry.declare(descriptor())


def test_declared_without_handler():
    registry = FunctionRegistry()
    registry.declare(descriptor())

    assert registry.get("getWeather") is None
    assert registry.names() == ["getWeather"]


def test_register_handler_later():
    registry = FunctionRegistry()
    registry.declare(descriptor())

    def handler(_args):
        return {"status": "success"}

    registry.register_handler("getWeather", handler)

    assert registry.get("getWeather") is handler
