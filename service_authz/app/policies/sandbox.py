"""
Restricted evaluator for administrator-supplied custom condition expressions.

Expressions are boolean predicates over exactly three bindings:

- ``user``: the subject (id, role, subscriptionTier, stats, attributes)
- ``resource``: the resource (type, id, userId, visibility, attributes)
- ``subscription``: the subscription (``limits``), or null

Supported syntax:

- boolean ops: ``and``/``&&``, ``or``/``||``, ``not``/``!``
- comparisons: ``==``/``===``, ``!=``/``!==``, ``<``, ``<=``, ``>``, ``>=``,
  ``in``, ``not in``
- dotted and constant-subscript access: ``user.stats.formCount``,
  ``resource["tags"][0]``, ``.length`` on strings and lists
- literals: strings, numbers, ``true``/``false``/``null``, lists
- numeric arithmetic: ``+ - * / %`` and unary minus

``!`` is rewritten to Python ``not``, which binds looser than comparisons:
``!user.role === "admin"`` reads as ``not (user.role == "admin")``. Write
``(!a) == b`` to negate the left operand alone.

Function calls, private (``_``) attributes and any other syntax are rejected
when the expression is compiled. Execution is bounded by a step budget and a
wall-clock deadline; every failure surfaces as ConditionEvaluationError.
"""

import ast
import operator
import re
import time
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional

from shared.errors import ConditionEvaluationError


BINDING_NAMES = ("user", "resource", "subscription")

_LITERAL_NAMES = {"true": True, "false": False, "null": None, "undefined": None}

_STRING_LITERAL = re.compile(r"""("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')""")
_JS_NOT = re.compile(r"!(?!=)")
_JS_OPERATORS = (("===", "=="), ("!==", "!="), ("&&", " and "), ("||", " or "))

_ALLOWED_NODES = (
    ast.Expression, ast.BoolOp, ast.And, ast.Or, ast.UnaryOp, ast.Not, ast.USub, ast.UAdd,
    ast.Compare, ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE, ast.In, ast.NotIn,
    ast.Is, ast.IsNot, ast.Name, ast.Load, ast.Attribute, ast.Subscript, ast.Constant,
    ast.List, ast.Tuple, ast.BinOp, ast.Add, ast.Sub, ast.Mult, ast.Div, ast.Mod,
)

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}

_ORDERING = {
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}

MAX_EXPRESSION_LENGTH = 4096


def normalize_expression(expression: str) -> str:
    """Rewrite JavaScript-style operators outside string literals into Python syntax."""
    parts = _STRING_LITERAL.split(expression)
    # re.split with one capture group alternates code, literal, code, ...
    for index in range(0, len(parts), 2):
        segment = parts[index]
        for js_op, py_op in _JS_OPERATORS:
            segment = segment.replace(js_op, py_op)
        parts[index] = _JS_NOT.sub(" not ", segment)
    return "".join(parts).strip()


@lru_cache(maxsize=512)
def compile_expression(expression: str) -> ast.Expression:
    """Parse and validate an expression; results are cached per expression string."""
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ConditionEvaluationError(expression, "Expression too long")

    try:
        tree = ast.parse(normalize_expression(expression), mode="eval")
    except (SyntaxError, ValueError, RecursionError, MemoryError) as e:
        raise ConditionEvaluationError(expression, f"Invalid expression: {e}") from e

    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise ConditionEvaluationError(
                expression, f"Unsupported syntax: {type(node).__name__}"
            )
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise ConditionEvaluationError(expression, f"Private attribute access: {node.attr}")
        if isinstance(node, ast.Name) and node.id not in BINDING_NAMES and node.id not in _LITERAL_NAMES:
            raise ConditionEvaluationError(expression, f"Unknown name: {node.id}")
        if isinstance(node, ast.Constant) and not isinstance(node.value, (str, int, float, bool, type(None))):
            raise ConditionEvaluationError(expression, "Unsupported literal")

    return tree


class _Execution:
    """Single evaluation of a compiled expression."""

    def __init__(self, expression: str, bindings: Mapping[str, Any], deadline: float, max_steps: int):
        self.expression = expression
        self.bindings = bindings
        self.deadline = deadline
        self.max_steps = max_steps
        self.steps = 0

    def fail(self, message: str) -> ConditionEvaluationError:
        return ConditionEvaluationError(self.expression, message)

    def visit(self, node: ast.AST) -> Any:
        self.steps += 1
        if self.steps > self.max_steps:
            raise self.fail("Expression step budget exceeded")
        if time.monotonic() > self.deadline:
            raise self.fail("Expression evaluation timed out")

        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                return all(self.truthy(value) for value in node.values)
            return any(self.truthy(value) for value in node.values)

        if isinstance(node, ast.UnaryOp):
            operand = self.visit(node.operand)
            if isinstance(node.op, ast.Not):
                return not operand
            if not _is_number(operand):
                raise self.fail("Unary arithmetic on a non-number")
            return -operand if isinstance(node.op, ast.USub) else +operand

        if isinstance(node, ast.Compare):
            left = self.visit(node.left)
            for op, comparator in zip(node.ops, node.comparators):
                right = self.visit(comparator)
                if not _compare(op, left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.BinOp):
            left = self.visit(node.left)
            right = self.visit(node.right)
            if not (_is_number(left) and _is_number(right)):
                raise self.fail("Arithmetic on a non-number")
            return _BIN_OPS[type(node.op)](left, right)

        if isinstance(node, ast.Name):
            if node.id in _LITERAL_NAMES:
                return _LITERAL_NAMES[node.id]
            return self.bindings.get(node.id)

        if isinstance(node, ast.Attribute):
            return self.member(self.visit(node.value), node.attr)

        if isinstance(node, ast.Subscript):
            return self.member(self.visit(node.value), self.visit(node.slice))

        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, (ast.List, ast.Tuple)):
            return [self.visit(element) for element in node.elts]

        raise self.fail(f"Unsupported syntax: {type(node).__name__}")

    def truthy(self, node: ast.AST) -> bool:
        return bool(self.visit(node))

    def member(self, base: Any, key: Any) -> Any:
        if base is None:
            raise self.fail(f"Cannot read '{key}' of null")
        if isinstance(base, Mapping):
            return base.get(key)
        if isinstance(base, (list, str)):
            if key == "length":
                return len(base)
            if isinstance(key, int) and not isinstance(key, bool):
                return base[key] if -len(base) <= key < len(base) else None
            return None
        raise self.fail(f"Cannot read '{key}' of {type(base).__name__}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _compare(op: ast.cmpop, left: Any, right: Any) -> bool:
    if isinstance(op, ast.Eq):
        return left == right
    if isinstance(op, ast.NotEq):
        return left != right
    if isinstance(op, ast.Is):
        return left is right
    if isinstance(op, ast.IsNot):
        return left is not right
    if isinstance(op, (ast.In, ast.NotIn)):
        if not isinstance(right, (list, str, Mapping)):
            return isinstance(op, ast.NotIn)
        try:
            contained = left in right
        except TypeError:
            contained = False
        return contained if isinstance(op, ast.In) else not contained
    # Ordering between missing or mismatched values is false
    try:
        return bool(_ORDERING[type(op)](left, right))
    except TypeError:
        return False


class ExpressionSandbox:
    """Evaluates custom condition expressions with bounded execution."""

    def __init__(self, timeout_ms: float = 50.0, max_steps: int = 10000):
        self.timeout_ms = timeout_ms
        self.max_steps = max_steps

    def evaluate(
        self,
        expression: str,
        user: Optional[Dict[str, Any]],
        resource: Optional[Dict[str, Any]],
        subscription: Optional[Dict[str, Any]],
        deadline: Optional[float] = None,
    ) -> bool:
        """Evaluate ``expression`` against the three bindings.

        ``deadline`` is an absolute ``time.monotonic()`` value; the effective
        deadline is the earlier of it and this sandbox's own timeout.

        Raises:
            ConditionEvaluationError: on parse errors, unsupported syntax,
                runtime errors, or when the time or step budget runs out.
        """
        limit = time.monotonic() + self.timeout_ms / 1000.0
        if deadline is not None:
            limit = min(limit, deadline)

        tree = compile_expression(expression)
        execution = _Execution(
            expression,
            {"user": user, "resource": resource, "subscription": subscription},
            limit,
            self.max_steps,
        )
        try:
            return bool(execution.visit(tree.body))
        except ConditionEvaluationError:
            raise
        except (ArithmeticError, TypeError, ValueError, RecursionError) as e:
            raise ConditionEvaluationError(expression, f"Expression failed: {e}") from e
