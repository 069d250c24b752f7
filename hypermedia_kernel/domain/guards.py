"""
Guard predicates on transitions.

A guard is either a restricted expression (authored in YAML) or a plain
Python predicate (registered in code).  Both receive the same three
context roots: ``fields`` (current values), ``change`` (proposed patch)
and ``payload`` (sub-resource item being appended).

Evaluation never raises for data problems: a guard that errors (e.g.
comparing ``None`` with a number) fails closed and is logged.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable

from hypermedia_kernel.domain.expressions import CompiledExpression, compile_expression
from hypermedia_kernel.logging_config import get_logger

logger = get_logger("domain.guards")

GuardPredicate = Callable[[Mapping[str, Any], Mapping[str, Any], Mapping[str, Any]], bool]


@dataclass(frozen=True)
class Guard:
    """A condition that must hold for a transition to be usable.

    Contract: frozen; exactly one of ``expression`` / ``predicate`` is set.
    """

    name: str
    expression: CompiledExpression | None = None
    predicate: GuardPredicate | None = field(default=None, compare=False, hash=False)
    description: str = ""

    def __post_init__(self) -> None:
        if (self.expression is None) == (self.predicate is None):
            raise ValueError(
                f"Guard {self.name!r} needs exactly one of expression or predicate"
            )

    @classmethod
    def from_expression(cls, name: str, source: str, description: str = "") -> "Guard":
        return cls(name=name, expression=compile_expression(source), description=description)

    @classmethod
    def from_predicate(
        cls, name: str, predicate: GuardPredicate, description: str = ""
    ) -> "Guard":
        return cls(name=name, predicate=predicate, description=description)

    @property
    def source(self) -> str:
        if self.expression is not None:
            return self.expression.source
        return f"<predicate {self.name}>"

    def evaluate(
        self,
        fields: Mapping[str, Any] | None = None,
        change: Mapping[str, Any] | None = None,
        payload: Mapping[str, Any] | None = None,
    ) -> bool:
        """Return True if the guard passes."""
        try:
            if self.expression is not None:
                return bool(
                    self.expression.evaluate(fields=fields, change=change, payload=payload)
                )
            return bool(self.predicate(fields or {}, change or {}, payload or {}))  # type: ignore[misc]
        except (TypeError, ValueError, ArithmeticError, KeyError) as e:
            logger.warning(
                "guard_evaluation_error",
                extra={"guard_name": self.name, "guard_source": self.source, "error": str(e)},
            )
            return False
