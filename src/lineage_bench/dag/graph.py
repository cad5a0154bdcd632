"""Layer graph — which warehouse step reads which, and in what waves they run."""

from __future__ import annotations
from dataclasses import dataclass, field


@dataclass
class StepNode:
    """One step of the daily batch; named after the table it writes."""
    name: str
    reads: set[str] = field(default_factory=set)
    feeds: set[str] = field(default_factory=set)


class CycleError(Exception):
    """Raised when steps read from each other in a loop."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Step cycle: {' → '.join(cycle)}")


class LayerGraph:
    """Dependency graph of the steps that build each warehouse layer."""

    def __init__(self):
        self._steps: dict[str, StepNode] = {}

    def add_step(self, name: str) -> StepNode:
        return self._steps.setdefault(name, StepNode(name=name))

    def add_dependency(self, upstream: str, downstream: str) -> None:
        """``downstream`` reads what ``upstream`` writes."""
        self.add_step(upstream).feeds.add(downstream)
        self.add_step(downstream).reads.add(upstream)

    def add_dependencies(self, step: str, depends_on: list[str]) -> None:
        for upstream in depends_on:
            self.add_dependency(upstream, step)

    @property
    def nodes(self) -> dict[str, StepNode]:
        return self._steps

    def get_upstream(self, name: str) -> set[str]:
        """Every step ``name`` reads from, directly or through other steps."""
        found: set[str] = set()
        pending = list(self._steps[name].reads) if name in self._steps else []
        while pending:
            step = pending.pop()
            if step not in found:
                found.add(step)
                pending.extend(self._steps[step].reads)
        return found

    def detect_cycles(self) -> list[str] | None:
        """Return one cycle as a path that starts and ends on the same step."""
        done: set[str] = set()

        for start in sorted(self._steps):
            if start in done:
                continue
            path = [start]
            on_path = {start}
            branches = [iter(sorted(self._steps[start].feeds))]
            while branches:
                nxt = next(branches[-1], None)
                if nxt is None:
                    branches.pop()
                    done.add(path[-1])
                    on_path.discard(path.pop())
                elif nxt in on_path:
                    return path[path.index(nxt):] + [nxt]
                elif nxt not in done:
                    path.append(nxt)
                    on_path.add(nxt)
                    branches.append(iter(sorted(self._steps[nxt].feeds)))
        return None

    def topological_sort(self) -> list[str]:
        return [name for wave in self.parallel_groups() for name in wave]

    def parallel_groups(self) -> list[list[str]]:
        """Waves of steps. A step lands one wave after the latest step it reads."""
        cycle = self.detect_cycles()
        if cycle:
            raise CycleError(cycle)

        depth: dict[str, int] = {}

        def _depth(name: str) -> int:
            if name not in depth:
                reads = self._steps[name].reads
                depth[name] = 1 + max((_depth(r) for r in reads), default=-1)
            return depth[name]

        waves: list[list[str]] = []
        for name in sorted(self._steps):
            level = _depth(name)
            while len(waves) <= level:
                waves.append([])
            waves[level].append(name)
        return waves

    def to_dict(self) -> dict:
        return {
            "steps": sorted(self._steps),
            "dependencies": [
                {"upstream": name, "downstream": child}
                for name in sorted(self._steps)
                for child in sorted(self._steps[name].feeds)
            ],
            "groups": self.parallel_groups(),
        }
