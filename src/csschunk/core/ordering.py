from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Hashable, Iterable, Sequence

PLUGIN_NAME = "csschunk"


@dataclass(frozen=True)
class UnmetPredecessor:
    module: Any
    failed_groups: tuple[str, ...]
    fulfilled_groups: tuple[str, ...]


@dataclass(frozen=True)
class OrderConflict:
    module: Any
    unmet: tuple[UnmetPredecessor, ...]


@dataclass(frozen=True)
class OrderResult:
    modules: list[Any]
    conflicts: list[OrderConflict]


def _collect_constraints(
    modules: Sequence[Hashable],
    consumers: Sequence[tuple[str, Sequence[Hashable]]],
) -> tuple[
    list[list[Hashable]],
    dict[Hashable, set[Hashable]],
    dict[Hashable, dict[Hashable, list[str]]],
]:
    known = set(modules)
    predecessors: dict[Hashable, set[Hashable]] = {module: set() for module in modules}
    reasons: dict[Hashable, dict[Hashable, list[str]]] = {module: {} for module in modules}

    # Remaining sequences are stored reversed so the next module is at the end.
    remaining: list[list[Hashable]] = []
    for name, sequence in consumers:
        ordered: list[Hashable] = []
        seen: set[Hashable] = set()
        for module in sequence:
            if module in known and module not in seen:
                seen.add(module)
                ordered.append(module)

        for position, module in enumerate(ordered):
            before = ordered[:position]
            predecessors[module].update(before)
            module_reasons = reasons[module]
            for earlier in before:
                groups = module_reasons.setdefault(earlier, [])
                if name not in groups:
                    groups.append(name)

        ordered.reverse()
        remaining.append(ordered)
    return remaining, predecessors, reasons


def resolve_module_order(
    modules: Iterable[Hashable],
    consumers: Sequence[tuple[str, Sequence[Hashable]]],
) -> OrderResult:
    """Merge the desired module order of every consumer into one sequence.

    Each consumer is a ``(name, sequence)`` pair; consumers are scanned in the
    order given. When the consumers disagree, the candidate with the fewest
    unplaced predecessors is placed anyway and an ``OrderConflict`` is
    recorded for it. Modules no consumer mentions keep their input order at the
    end of the result.
    """
    universe = list(dict.fromkeys(modules))
    remaining, predecessors, reasons = _collect_constraints(universe, consumers)

    placed: set[Hashable] = set()
    ordered: list[Hashable] = []
    conflicts: list[OrderConflict] = []

    while True:
        best_list: list[Hashable] | None = None
        best_unmet: list[Hashable] | None = None
        success = False

        for sequence in remaining:
            while sequence and sequence[-1] in placed:
                sequence.pop()
            if not sequence:
                continue

            candidate = sequence[-1]
            unmet = [
                module
                for module in universe
                if module in predecessors[candidate] and module not in placed
            ]
            if best_unmet is None or len(best_unmet) > len(unmet):
                best_list = sequence
                best_unmet = unmet
            if not unmet:
                placed.add(sequence.pop())
                ordered.append(candidate)
                success = True
                break

        if success:
            continue
        if best_list is None or best_unmet is None:
            break

        forced = best_list.pop()
        conflicts.append(
            OrderConflict(
                module=forced,
                unmet=tuple(
                    UnmetPredecessor(
                        module=module,
                        failed_groups=tuple(reasons[forced].get(module, [])),
                        fulfilled_groups=tuple(reasons[module].get(forced, [])),
                    )
                    for module in best_unmet
                ),
            )
        )
        placed.add(forced)
        ordered.append(forced)

    for module in universe:
        if module not in placed:
            placed.add(module)
            ordered.append(module)

    return OrderResult(modules=ordered, conflicts=conflicts)


def format_conflict(
    chunk_label: str,
    conflict: OrderConflict,
    describe: Callable[[Any], str] = str,
) -> str:
    lines = [
        f"chunk {chunk_label} [{PLUGIN_NAME}]",
        "Conflicting order. Following module has been added:",
        f" * {describe(conflict.module)}",
        "despite it was not able to fulfill desired ordering with these modules:",
    ]
    for unmet in conflict.unmet:
        lines.append(f" * {describe(unmet.module)}")
        lines.append(
            "   - couldn't fulfill desired order of chunk group(s) "
            f"{', '.join(unmet.failed_groups)}"
        )
        if unmet.fulfilled_groups:
            lines.append(
                "   - while fulfilling desired order of chunk group(s) "
                f"{', '.join(unmet.fulfilled_groups)}"
            )
    return "\n".join(lines)
