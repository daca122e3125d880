"""Commit order calculation.

Orders entities so that every table exists before the tables referencing
it. Edges carry a weight: 1 for a required foreign key, 0 for a nullable
one. Required edges are always honoured; nullable edges are deferred only
when a cycle leaves no other choice.
"""

from __future__ import annotations

import logging

from metaorm.exceptions import SchemaDependencyError

logger = logging.getLogger(__name__)

REQUIRED = 1
OPTIONAL = 0


class CommitOrderCalculator:
    """Topological sort over a weighted dependency graph.

    Example:
        calc = CommitOrderCalculator()
        calc.add_node("Author")
        calc.add_node("Book")
        calc.add_dependency("Author", "Book", REQUIRED)
        calc.sort()  # ['Author', 'Book']
    """

    def __init__(self) -> None:
        self._nodes: dict[str, dict[str, int]] = {}

    def add_node(self, name: str) -> None:
        self._nodes.setdefault(name, {})

    def has_node(self, name: str | None) -> bool:
        return name is not None and name in self._nodes

    def add_dependency(self, from_: str, to: str, weight: int) -> None:
        """Record that ``from_`` must be committed before ``to``.

        Self references are ignored. When the same edge is added twice the
        stronger weight wins.
        """
        if from_ == to:
            return
        self.add_node(from_)
        self.add_node(to)
        edges = self._nodes[from_]
        edges[to] = max(edges.get(to, OPTIONAL), weight)

    def sort(self) -> list[str]:
        """Return node names in dependency order.

        Raises:
            SchemaDependencyError: If required edges form a cycle
        """
        self._check_required_cycles()

        remaining = list(self._nodes)
        incoming: dict[str, dict[str, int]] = {name: {} for name in remaining}
        for source, edges in self._nodes.items():
            for target, weight in edges.items():
                incoming[target][source] = weight

        ret: list[str] = []
        while remaining:
            ready = next((n for n in remaining if not incoming[n]), None)
            if ready is None:
                ready = self._break_cycle(remaining, incoming)

            ret.append(ready)
            remaining.remove(ready)
            for target in self._nodes[ready]:
                incoming[target].pop(ready, None)

        return ret

    def _break_cycle(self, remaining: list[str], incoming: dict[str, dict[str, int]]) -> str:
        # first node whose blockers are all nullable, in registration order
        for name in remaining:
            if all(weight == OPTIONAL for weight in incoming[name].values()):
                deferred = sorted(incoming[name])
                logger.debug(f"Deferring nullable dependencies {deferred} -> {name} to break a cycle")
                incoming[name].clear()
                return name

        # unreachable after _check_required_cycles, kept for a precise error
        raise SchemaDependencyError(remaining + remaining[:1])

    def _check_required_cycles(self) -> None:
        state: dict[str, int] = {}  # 1 = on stack, 2 = done
        stack: list[str] = []

        def visit(name: str) -> None:
            state[name] = 1
            stack.append(name)
            for target, weight in self._nodes[name].items():
                if weight != REQUIRED:
                    continue
                if state.get(target) == 1:
                    cycle = stack[stack.index(target):] + [target]
                    raise SchemaDependencyError(cycle)
                if target not in state:
                    visit(target)
            stack.pop()
            state[name] = 2

        for name in self._nodes:
            if name not in state:
                visit(name)
