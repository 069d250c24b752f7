"""
Restricted expression language for guards and trigger conditions.

Guard and trigger expressions are authored in configuration, so they are
parsed with ``ast`` and checked against a fixed operator set before they
are ever evaluated.  Evaluation walks the validated tree directly; nothing
is passed to ``eval``.

Allowed:
  - Comparisons: <, <=, >, >=, ==, !=, is, is not, in, not in
  - Logical: and, or, not
  - Field access: root.field_name or root["field-name"] where root is one
    of ``fields`` (current values), ``change`` (proposed patch) or
    ``payload`` (sub-resource item)
  - Literals: numbers, strings, booleans, None, lists, tuples
  - Arithmetic: +, -, *, /
  - Functions: abs(), len()
  - Conditional: a if b else c

Rejected:
  - imports, arbitrary calls, nested attribute chains, lambda, arbitrary
    names, comprehensions
"""

import ast
import operator
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable

from hypermedia_kernel.exceptions import InvalidExpressionError

ALLOWED_FUNCTIONS: dict[str, Callable[..., Any]] = {"abs": abs, "len": len}

CONTEXT_ROOTS: frozenset[str] = frozenset({"fields", "change", "payload"})

ALLOWED_NAMES: frozenset[str] = frozenset({"True", "False", "None"} | CONTEXT_ROOTS)

_COMPARE_OPS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

_BIN_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}


@dataclass(frozen=True)
class ExpressionProblem:
    """A validation problem found in an expression."""

    expression: str
    message: str
    node_type: str = ""


def validate_expression(expression: str) -> list[ExpressionProblem]:
    """Validate an expression against the restricted AST.

    Returns a list of problems. Empty list means the expression is valid.
    """
    try:
        tree = ast.parse(expression, mode="eval")
    except SyntaxError as e:
        return [ExpressionProblem(expression=expression, message=f"Syntax error: {e.msg}")]

    problems: list[ExpressionProblem] = []
    _validate_node(tree.body, expression, problems)
    return problems


def _validate_node(
    node: ast.AST, expression: str, problems: list[ExpressionProblem]
) -> None:
    """Recursively validate an AST node."""

    def reject(message: str, node_type: str) -> None:
        problems.append(
            ExpressionProblem(expression=expression, message=message, node_type=node_type)
        )

    if isinstance(node, ast.BoolOp):
        for value in node.values:
            _validate_node(value, expression, problems)

    elif isinstance(node, ast.UnaryOp):
        if not isinstance(node.op, (ast.Not, ast.USub)):
            reject(f"Disallowed unary operator: {type(node.op).__name__}", type(node.op).__name__)
        _validate_node(node.operand, expression, problems)

    elif isinstance(node, ast.Compare):
        _validate_node(node.left, expression, problems)
        for comparator in node.comparators:
            _validate_node(comparator, expression, problems)
        for op in node.ops:
            if type(op) not in _COMPARE_OPS:
                reject(f"Disallowed comparison: {type(op).__name__}", type(op).__name__)

    elif isinstance(node, ast.BinOp):
        if type(node.op) in _BIN_OPS:
            _validate_node(node.left, expression, problems)
            _validate_node(node.right, expression, problems)
        else:
            reject(f"Disallowed binary operator: {type(node.op).__name__}", type(node.op).__name__)

    elif isinstance(node, ast.Call):
        if (
            isinstance(node.func, ast.Name)
            and node.func.id in ALLOWED_FUNCTIONS
            and not node.keywords
        ):
            for arg in node.args:
                _validate_node(arg, expression, problems)
        else:
            reject(f"Disallowed function call: {_get_name(node.func)}", "Call")

    elif isinstance(node, ast.Attribute):
        if not (isinstance(node.value, ast.Name) and node.value.id in CONTEXT_ROOTS):
            reject(
                f"Disallowed attribute access: {_get_name(node)}. "
                f"Only {', '.join(sorted(CONTEXT_ROOTS))}.field_name is allowed.",
                "Attribute",
            )

    elif isinstance(node, ast.Subscript):
        if not (isinstance(node.value, ast.Name) and node.value.id in CONTEXT_ROOTS):
            reject(f"Disallowed subscript on {_get_name(node.value)}", "Subscript")
        elif not (isinstance(node.slice, ast.Constant) and isinstance(node.slice.value, str)):
            reject("Subscript key must be a string literal", "Subscript")

    elif isinstance(node, ast.Name):
        if node.id not in ALLOWED_NAMES:
            reject(f"Disallowed name: {node.id}", "Name")

    elif isinstance(node, ast.Constant):
        if not isinstance(node.value, (int, float, str, bool, type(None))):
            reject(f"Disallowed constant type: {type(node.value).__name__}", "Constant")

    elif isinstance(node, (ast.List, ast.Tuple)):
        for elt in node.elts:
            _validate_node(elt, expression, problems)

    elif isinstance(node, ast.IfExp):
        _validate_node(node.test, expression, problems)
        _validate_node(node.body, expression, problems)
        _validate_node(node.orelse, expression, problems)

    else:
        reject(f"Disallowed AST node type: {type(node).__name__}", type(node).__name__)


def _get_name(node: ast.AST) -> str:
    """Extract a human-readable name from an AST node."""
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return f"{_get_name(node.value)}.{node.attr}"
    return type(node).__name__


@dataclass(frozen=True)
class CompiledExpression:
    """A validated expression, ready to evaluate against context roots."""

    source: str
    _tree: ast.Expression = field(compare=False, hash=False, repr=False)

    def evaluate(self, **roots: Mapping[str, Any] | None) -> Any:
        """Evaluate with the given context roots; missing roots are empty."""
        context = {name: dict(roots.get(name) or {}) for name in CONTEXT_ROOTS}
        return _eval_node(self._tree.body, context)


def compile_expression(expression: str) -> CompiledExpression:
    """Validate and parse ``expression``.

    Raises:
        InvalidExpressionError: if the expression is outside the grammar.
    """
    problems = validate_expression(expression)
    if problems:
        raise InvalidExpressionError(expression, [p.message for p in problems])
    return CompiledExpression(source=expression, _tree=ast.parse(expression, mode="eval"))


def _eval_node(node: ast.AST, context: dict[str, dict[str, Any]]) -> Any:
    if isinstance(node, ast.BoolOp):
        if isinstance(node.op, ast.And):
            result: Any = True
            for value in node.values:
                result = _eval_node(value, context)
                if not result:
                    return result
            return result
        result = False
        for value in node.values:
            result = _eval_node(value, context)
            if result:
                return result
        return result

    if isinstance(node, ast.UnaryOp):
        operand = _eval_node(node.operand, context)
        if isinstance(node.op, ast.Not):
            return not operand
        return -operand

    if isinstance(node, ast.Compare):
        left = _eval_node(node.left, context)
        for op, comparator in zip(node.ops, node.comparators):
            right = _eval_node(comparator, context)
            if not _COMPARE_OPS[type(op)](left, right):
                return False
            left = right
        return True

    if isinstance(node, ast.BinOp):
        return _BIN_OPS[type(node.op)](
            _eval_node(node.left, context), _eval_node(node.right, context)
        )

    if isinstance(node, ast.Call):
        fn = ALLOWED_FUNCTIONS[node.func.id]  # type: ignore[attr-defined]
        return fn(*(_eval_node(arg, context) for arg in node.args))

    if isinstance(node, ast.Attribute):
        return context[node.value.id].get(node.attr)  # type: ignore[attr-defined]

    if isinstance(node, ast.Subscript):
        return context[node.value.id].get(node.slice.value)  # type: ignore[attr-defined]

    if isinstance(node, ast.Name):
        if node.id in CONTEXT_ROOTS:
            return context[node.id]
        return {"True": True, "False": False, "None": None}[node.id]

    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, ast.List):
        return [_eval_node(elt, context) for elt in node.elts]

    if isinstance(node, ast.Tuple):
        return tuple(_eval_node(elt, context) for elt in node.elts)

    if isinstance(node, ast.IfExp):
        if _eval_node(node.test, context):
            return _eval_node(node.body, context)
        return _eval_node(node.orelse, context)

    raise InvalidExpressionError(ast.unparse(node), [f"Unsupported node {type(node).__name__}"])
