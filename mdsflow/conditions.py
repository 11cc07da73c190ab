"""Guard expression evaluation over execution variables."""

from __future__ import annotations

import ast
import operator
from typing import Any, Callable, Mapping, Optional, Protocol

from .errors import ConditionError


class ConditionEvaluator(Protocol):
    def evaluate(self, expression: Optional[str], variables: Mapping[str, Any]) -> bool:
        """Return whether ``expression`` holds for ``variables``."""


_BINARY_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_COMPARE_OPS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "len": len,
    "bool": bool,
    "str": str,
    "int": int,
}

_LITERAL_NAMES = {
    "true": True,
    "false": False,
    "null": None,
    "none": None,
}


class ExpressionConditionEvaluator:
    """Evaluate a small, safe subset of Python expressions.

    Names resolve against the variables mapping; unknown names are ``None``.
    Attribute access reads dictionary keys, so ``review.approved`` and
    ``review['approved']`` are equivalent. Anything outside the supported
    subset raises ``ConditionError``.
    """

    def evaluate(self, expression: Optional[str], variables: Mapping[str, Any]) -> bool:
        if expression is None or not str(expression).strip():
            return True
        try:
            tree = ast.parse(str(expression).strip(), mode="eval")
        except SyntaxError as e:
            raise ConditionError(f"Invalid condition {expression!r}: {e.msg}") from e
        try:
            return bool(self._eval(tree.body, variables))
        except ConditionError:
            raise
        except (TypeError, ValueError, ZeroDivisionError, KeyError, IndexError) as e:
            raise ConditionError(f"Cannot evaluate condition {expression!r}: {e}") from e

    def _eval(self, node: ast.AST, variables: Mapping[str, Any]) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            if node.id in variables:
                return variables[node.id]
            return _LITERAL_NAMES.get(node.id.lower())
        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                result: Any = True
                for value in node.values:
                    result = self._eval(value, variables)
                    if not result:
                        return result
                return result
            result = False
            for value in node.values:
                result = self._eval(value, variables)
                if result:
                    return result
            return result
        if isinstance(node, ast.UnaryOp):
            operand = self._eval(node.operand, variables)
            if isinstance(node.op, ast.Not):
                return not operand
            if isinstance(node.op, ast.USub):
                return -operand
            if isinstance(node.op, ast.UAdd):
                return +operand
        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
            return _BINARY_OPS[type(node.op)](
                self._eval(node.left, variables), self._eval(node.right, variables)
            )
        if isinstance(node, ast.Compare):
            left = self._eval(node.left, variables)
            for op, comparator in zip(node.ops, node.comparators):
                right = self._eval(comparator, variables)
                if not _COMPARE_OPS[type(op)](left, right):
                    return False
                left = right
            return True
        if isinstance(node, (ast.List, ast.Tuple, ast.Set)):
            items = [self._eval(elt, variables) for elt in node.elts]
            return set(items) if isinstance(node, ast.Set) else items
        if isinstance(node, ast.Subscript):
            container = self._eval(node.value, variables)
            key = self._eval(node.slice, variables)
            if isinstance(container, Mapping):
                return container.get(key)
            if container is None:
                return None
            return container[key]
        if isinstance(node, ast.Attribute):
            container = self._eval(node.value, variables)
            if isinstance(container, Mapping):
                return container.get(node.attr)
            return None
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS:
                raise ConditionError(f"Unsupported function call in condition: {ast.dump(node.func)}")
            if node.keywords:
                raise ConditionError("Keyword arguments are not supported in conditions")
            args = [self._eval(arg, variables) for arg in node.args]
            return _FUNCTIONS[node.func.id](*args)
        raise ConditionError(f"Unsupported expression: {type(node).__name__}")
