"""
pysqlsynth: Synthesize parameterized SQL statements from data-class metadata.

This module extracts key fields from join predicates and field accessors.
"""

import enum
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from strong_typing.inspection import dataclass_fields, is_dataclass_type

from ..errors import MalformedJoinPredicateError
from .expressions import (
    AccessorLike,
    CapturedExpression,
    Coercion,
    Comparison,
    Expression,
    FieldAccess,
    capture,
)


@enum.unique
class Side(enum.Enum):
    "Selects an operand of a binary predicate."

    LEFT = "left"
    RIGHT = "right"


JoinPredicate = Callable[[Any, Any], Any]


def _has_field(entity_type: type, field_name: str) -> bool:
    if not is_dataclass_type(entity_type):
        return False
    return any(field.name == field_name for field in dataclass_fields(entity_type))


def capture_predicate(
    predicate: JoinPredicate, left_type: type, right_type: type
) -> CapturedExpression:
    "Captures a two-parameter predicate such as `lambda p, c: p.CategoryID == c.CategoryID`."

    try:
        return capture(predicate, left_type, right_type)
    except TypeError as e:
        raise MalformedJoinPredicateError(
            f"cannot capture two-parameter predicate ({e})", repr(predicate)
        ) from e


def _unwrap_field(
    operand: Expression, side: Side, expression: CapturedExpression
) -> FieldAccess:
    "Resolves a (possibly coerced) field access on the parameter that belongs to the given side."

    # exactly one layer of type conversion is permitted
    if isinstance(operand, Coercion):
        operand = operand.operand

    if not isinstance(operand, FieldAccess):
        raise MalformedJoinPredicateError(
            "expected: field access (optionally wrapped in a single coercion)",
            str(expression),
            side.value,
        )

    index = 0 if side is Side.LEFT else 1
    parameter = expression.parameters[index]
    if operand.parameter is not parameter:
        raise MalformedJoinPredicateError(
            f"expected: field of parameter `{parameter.name}`; got: field of parameter `{operand.parameter.name}`",
            str(expression),
            side.value,
        )

    if not _has_field(parameter.entity_type, operand.field_name):
        raise MalformedJoinPredicateError(
            f"type `{parameter.entity_type.__name__}` has no field `{operand.field_name}`",
            str(expression),
            side.value,
        )

    return operand


def _get_key_fields(expression: CapturedExpression) -> tuple[FieldAccess, FieldAccess]:
    "Resolves both operands of an equality predicate, left side first."

    body = expression.body
    if not isinstance(body, Comparison) or not body.is_equality:
        raise MalformedJoinPredicateError(
            "expected: binary equality of two fields", str(expression)
        )
    return (
        _unwrap_field(body.left, Side.LEFT, expression),
        _unwrap_field(body.right, Side.RIGHT, expression),
    )


def extract_key(
    predicate: Union[JoinPredicate, CapturedExpression],
    side: Side,
    left_type: Optional[type] = None,
    right_type: Optional[type] = None,
) -> str:
    """
    Returns the name of the field compared on one side of an equality predicate.

    :param predicate: A predicate such as `lambda p, c: p.CategoryID == c.CategoryID`, or its captured form.
    :param side: The operand whose field to return.
    :param left_type: Entity type of the first predicate parameter, if the predicate is a callable.
    :param right_type: Entity type of the second predicate parameter, if the predicate is a callable.
    """

    expression = _as_captured(predicate, left_type, right_type)
    left, right = _get_key_fields(expression)
    return (left if side is Side.LEFT else right).field_name


def extract_key_type(
    predicate: Union[JoinPredicate, CapturedExpression],
    side: Side,
    left_type: Optional[type] = None,
    right_type: Optional[type] = None,
) -> type:
    "Returns the entity type whose field is compared on one side of an equality predicate."

    expression = _as_captured(predicate, left_type, right_type)
    left, right = _get_key_fields(expression)
    return (left if side is Side.LEFT else right).parameter.entity_type


def _as_captured(
    predicate: Union[JoinPredicate, CapturedExpression],
    left_type: Optional[type],
    right_type: Optional[type],
) -> CapturedExpression:
    if isinstance(predicate, CapturedExpression):
        if len(predicate.parameters) != 2:
            raise MalformedJoinPredicateError(
                "expected: two-parameter predicate", str(predicate)
            )
        return predicate

    if left_type is None or right_type is None:
        raise TypeError("entity types are required to capture a callable predicate")
    return capture_predicate(predicate, left_type, right_type)


@dataclass(frozen=True)
class JoinSpec:
    """
    One step of a join chain.

    :param left_type: Entity type already part of the join.
    :param right_type: Entity type joined in this step.
    :param left_key_field: Field of the left entity compared for equality.
    :param right_key_field: Field of the right entity compared for equality.
    """

    left_type: type
    right_type: type
    left_key_field: str
    right_key_field: str

    def __str__(self) -> str:
        return (
            f"{self.left_type.__name__}.{self.left_key_field} == "
            f"{self.right_type.__name__}.{self.right_key_field}"
        )


def join(
    left_type: type,
    right_type: type,
    on: Union[JoinPredicate, tuple[str, str]],
) -> JoinSpec:
    """
    Creates a join step from an equality predicate or a pair of field names.

    ```
    join(Product, Category, lambda p, c: p.CategoryID == c.CategoryID)
    join(Product, Category, ("CategoryID", "CategoryID"))
    ```

    :param left_type: Entity type already part of the join.
    :param right_type: Entity type joined in this step.
    :param on: A two-parameter equality predicate, or a `(left field, right field)` pair.
    """

    if isinstance(on, tuple):
        if len(on) != 2 or not all(isinstance(name, str) for name in on):
            raise MalformedJoinPredicateError(
                "expected: pair of field names", repr(on)
            )
        left_field, right_field = on
        text = f"({left_type.__name__}.{left_field}, {right_type.__name__}.{right_field})"
        if not _has_field(left_type, left_field):
            raise MalformedJoinPredicateError(
                f"type `{left_type.__name__}` has no field `{left_field}`",
                text,
                Side.LEFT.value,
            )
        if not _has_field(right_type, right_field):
            raise MalformedJoinPredicateError(
                f"type `{right_type.__name__}` has no field `{right_field}`",
                text,
                Side.RIGHT.value,
            )
        return JoinSpec(left_type, right_type, left_field, right_field)

    expression = capture_predicate(on, left_type, right_type)
    return JoinSpec(
        left_type,
        right_type,
        extract_key(expression, Side.LEFT),
        extract_key(expression, Side.RIGHT),
    )


def get_member_name(accessor: AccessorLike, entity_type: type) -> str:
    """
    Returns the field name selected by an accessor.

    :param accessor: A field name, or a single-parameter callable such as `lambda p: p.ProductID`.
    :param entity_type: The entity type the accessor is applied to.
    """

    if isinstance(accessor, str):
        if not _has_field(entity_type, accessor):
            raise MalformedJoinPredicateError(
                f"type `{entity_type.__name__}` has no field `{accessor}`", accessor
            )
        return accessor

    try:
        expression = capture(accessor, entity_type)
    except TypeError as e:
        raise MalformedJoinPredicateError(
            f"cannot capture single-parameter accessor ({e})", repr(accessor)
        ) from e

    body = expression.body
    if isinstance(body, Coercion):
        body = body.operand
    if not isinstance(body, FieldAccess):
        raise MalformedJoinPredicateError(
            "expected: field access (optionally wrapped in a single coercion)",
            str(expression),
        )
    if not _has_field(entity_type, body.field_name):
        raise MalformedJoinPredicateError(
            f"type `{entity_type.__name__}` has no field `{body.field_name}`",
            str(expression),
        )
    return body.field_name
