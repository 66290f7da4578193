"""
pysqlsynth: Synthesize parameterized SQL statements from data-class metadata.

This module captures field access and field equality expressions written as ordinary Python callables.

A callable such as `lambda p, c: p.CategoryID == c.CategoryID` is invoked with stand-in parameter objects. Attribute
access on a stand-in yields a field reference, and comparing two field references yields a comparison node, which
together make up a small expression tree that can be inspected instead of evaluated.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Union

from strong_typing.name import python_type_to_str


@dataclass(frozen=True, eq=False)
class Parameter:
    "A formal parameter of a captured callable, bound to an entity type."

    name: str
    index: int
    entity_type: type

    def __str__(self) -> str:
        return self.name


class Expression:
    "Base class of captured expression nodes."

    def __eq__(self, other: Any) -> "Comparison":  # type: ignore[override]
        return Comparison("==", self, _as_expression(other))

    def __ne__(self, other: Any) -> "Comparison":  # type: ignore[override]
        return Comparison("!=", self, _as_expression(other))

    def __lt__(self, other: Any) -> "Comparison":
        return Comparison("<", self, _as_expression(other))

    def __le__(self, other: Any) -> "Comparison":
        return Comparison("<=", self, _as_expression(other))

    def __gt__(self, other: Any) -> "Comparison":
        return Comparison(">", self, _as_expression(other))

    def __ge__(self, other: Any) -> "Comparison":
        return Comparison(">=", self, _as_expression(other))

    def __bool__(self) -> bool:
        raise TypeError(
            "captured expressions have no truth value; use `==` to compare fields, not `and`, `or` or `if`"
        )

    __hash__ = None  # type: ignore[assignment]


class FieldAccess(Expression):
    "Access to a field of a parameter, e.g. `p.ProductID`."

    parameter: Parameter
    field_name: str

    def __init__(self, parameter: Parameter, field_name: str) -> None:
        self.parameter = parameter
        self.field_name = field_name

    def __str__(self) -> str:
        return f"{self.parameter.name}.{self.field_name}"

    def __repr__(self) -> str:
        return f"FieldAccess({self})"


class Coercion(Expression):
    "A type conversion wrapped around another expression, e.g. `coerce(p.CategoryID, int)`."

    operand: Expression
    target_type: type

    def __init__(self, operand: Expression, target_type: type) -> None:
        self.operand = operand
        self.target_type = target_type

    def __str__(self) -> str:
        return f"coerce({self.operand}, {python_type_to_str(self.target_type)})"

    def __repr__(self) -> str:
        return f"Coercion({self})"


class Constant(Expression):
    "A value that is not a captured expression."

    value: Any

    def __init__(self, value: Any) -> None:
        self.value = value

    def __str__(self) -> str:
        return repr(self.value)

    def __repr__(self) -> str:
        return f"Constant({self.value!r})"


class Comparison(Expression):
    "A binary comparison of two expressions."

    operator: str
    left: Expression
    right: Expression

    def __init__(self, operator: str, left: Expression, right: Expression) -> None:
        self.operator = operator
        self.left = left
        self.right = right

    @property
    def is_equality(self) -> bool:
        return self.operator == "=="

    def __str__(self) -> str:
        return f"{self.left} {self.operator} {self.right}"

    def __repr__(self) -> str:
        return f"Comparison({self})"


def _as_expression(value: Any) -> Expression:
    if isinstance(value, Expression):
        return value
    else:
        return Constant(value)


def coerce(expression: Any, target_type: type) -> Coercion:
    """
    Marks a field as converted to another type, e.g. to compare an `Optional[int]` field with an `int` field.

    :param expression: A field access such as `p.CategoryID`.
    :param target_type: The type to convert to.
    """

    return Coercion(_as_expression(expression), target_type)


class ParameterProxy:
    "Stands in for an entity instance while a callable is captured."

    __slots__ = ("_parameter",)

    _parameter: Parameter

    def __init__(self, parameter: Parameter) -> None:
        object.__setattr__(self, "_parameter", parameter)

    def __getattr__(self, name: str) -> FieldAccess:
        if name.startswith("__") and name.endswith("__"):
            raise AttributeError(name)
        return FieldAccess(self._parameter, name)

    def __setattr__(self, name: str, value: Any) -> None:
        raise TypeError("captured parameters are read-only")

    def __repr__(self) -> str:
        return f"<{self._parameter.name}: {self._parameter.entity_type.__name__}>"


@dataclass(frozen=True, eq=False)
class CapturedExpression:
    """
    The result of capturing a callable.

    :param parameters: Parameters of the callable, each bound to an entity type.
    :param body: The expression the callable returned, or a constant if the callable returned a plain value.
    """

    parameters: tuple[Parameter, ...]
    body: Expression

    def __str__(self) -> str:
        names = ", ".join(parameter.name for parameter in self.parameters)
        return f"lambda {names}: {self.body}"


def _parameter_names(fn: Callable[..., Any], count: int) -> list[str]:
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return [f"_{index}" for index in range(count)]

    names = [
        parameter.name
        for parameter in signature.parameters.values()
        if parameter.kind
        in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        )
    ]
    if len(names) != count:
        raise TypeError(
            f"expected: callable with {count} positional parameter(s); got: {len(names)} in {fn}"
        )
    return names


def capture(fn: Callable[..., Any], *entity_types: type) -> CapturedExpression:
    """
    Invokes a callable with stand-in parameters to capture the expression it builds.

    :param fn: A callable such as `lambda p, c: p.CategoryID == c.CategoryID`.
    :param entity_types: The entity type each positional parameter of the callable is bound to.
    """

    if not callable(fn):
        raise TypeError(f"expected: a callable; got: {fn!r}")

    names = _parameter_names(fn, len(entity_types))
    parameters = tuple(
        Parameter(name, index, entity_type)
        for index, (name, entity_type) in enumerate(zip(names, entity_types))
    )
    result = fn(*(ParameterProxy(parameter) for parameter in parameters))
    return CapturedExpression(parameters, _as_expression(result))


AccessorLike = Union[str, Callable[[Any], Any]]
