"""Module affinity: cluster every function into exactly one logical module."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .callgraph import CallGraph
from .config import AffinityConfig
from .errors import ConfigurationError
from .models import ModuleAssignment, ModuleDefinition
from .symbols import SymbolTable

logger = logging.getLogger(__name__)

FALLBACK_MODULE = "utils"


def default_modules() -> List[ModuleDefinition]:
    """Built-in module set; ``utils`` collects whatever fits nowhere else."""
    return [
        ModuleDefinition(
            "core",
            keywords=frozenset({"main", "loop"}),
            seed_functions=frozenset({"main_loop", "message_processing"}),
        ),
        ModuleDefinition(
            "tools",
            keywords=frozenset({"tool", "command"}),
            seed_functions=frozenset({"bash", "read", "write", "edit"}),
        ),
        ModuleDefinition(
            "api_client",
            keywords=frozenset({"api", "request", "stream"}),
            seed_functions=frozenset({"api_client"}),
        ),
        ModuleDefinition(
            "prompts",
            keywords=frozenset({"prompt"}),
            seed_functions=frozenset({"system_prompt", "prompt_builder"}),
        ),
        ModuleDefinition(
            "telemetry",
            keywords=frozenset({"metric", "telemetry", "usage"}),
            seed_functions=frozenset({"metrics", "usage_tracking"}),
        ),
        ModuleDefinition(
            "git",
            keywords=frozenset({"git", "commit", "branch"}),
            seed_functions=frozenset({"git_operations"}),
        ),
        ModuleDefinition(
            "hooks",
            keywords=frozenset({"hook"}),
            seed_functions=frozenset({"hook_system"}),
        ),
        ModuleDefinition(
            FALLBACK_MODULE,
            keywords=frozenset({"util", "helper"}),
            seed_functions=frozenset({"helpers", "formatters"}),
            fallback=True,
        ),
    ]


@dataclass
class ModuleAssignmentResult:
    assignments: List[ModuleAssignment] = field(default_factory=list)
    rounds: int = 0

    def __post_init__(self) -> None:
        self.by_function: Dict[str, ModuleAssignment] = {a.function: a for a in self.assignments}

    def module_of(self, func_id: str) -> Optional[str]:
        assignment = self.by_function.get(func_id)
        return assignment.module if assignment is not None else None

    def by_module(self) -> Dict[str, List[str]]:
        grouped: Dict[str, List[str]] = {}
        for assignment in self.assignments:
            grouped.setdefault(assignment.module, []).append(assignment.function)
        return grouped

    @property
    def stats(self) -> Dict[str, int]:
        counts = {"seed": 0, "affinity": 0, "fallback": 0}
        for assignment in self.assignments:
            counts[assignment.reason] = counts.get(assignment.reason, 0) + 1
        counts["rounds"] = self.rounds
        return counts


class ModuleAffinityAssigner:
    """Assign functions to modules by seeds, call locality and naming.

    Scores follow ``w1 * neighbour fraction + w2 * keyword match + w3 * seeded``.
    Assignment proceeds in rounds so that affinity can spread outwards from
    the seeds through the call graph.
    """

    def __init__(
        self,
        modules: Optional[Sequence[ModuleDefinition]] = None,
        config: Optional[AffinityConfig] = None,
    ):
        self.modules: List[ModuleDefinition] = list(modules) if modules is not None else default_modules()
        self.config = config or AffinityConfig()
        self.fallback = self._validate(self.modules)

    @staticmethod
    def _validate(modules: Sequence[ModuleDefinition]) -> ModuleDefinition:
        names = [m.name for m in modules]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate module names: {', '.join(duplicates)}")
        fallbacks = [m for m in modules if m.fallback]
        if len(fallbacks) != 1:
            raise ConfigurationError(
                f"Exactly one fallback module is required, found {len(fallbacks)}"
            )
        return fallbacks[0]

    def assign(
        self,
        call_graph: CallGraph,
        functions: Optional[Iterable[str]] = None,
        symbols: Optional[SymbolTable] = None,
    ) -> ModuleAssignmentResult:
        order = list(functions) if functions is not None else list(call_graph.functions)
        names = self._known_names(order, symbols)
        assigned: Dict[str, ModuleAssignment] = {}

        # Seeds first; the first declaring module wins.
        for module in self.modules:
            for func_id in order:
                if func_id in module.seed_functions and func_id not in assigned:
                    assigned[func_id] = ModuleAssignment(func_id, module.name, "seed", self.config.w3)

        rounds = 0
        pending = [f for f in order if f not in assigned]
        while pending:
            rounds += 1
            decided: Dict[str, ModuleAssignment] = {}
            for func_id in pending:
                module, score = self._best_module(func_id, names[func_id], call_graph, assigned)
                if module is not None and score >= self.config.threshold:
                    decided[func_id] = ModuleAssignment(func_id, module, "affinity", round(score, 4))
            if not decided:
                break
            assigned.update(decided)
            pending = [f for f in pending if f not in decided]

        for func_id in pending:
            assigned[func_id] = ModuleAssignment(func_id, self.fallback.name, "fallback", 0.0)

        result = ModuleAssignmentResult([assigned[f] for f in order], rounds)
        stats = result.stats
        logger.info(
            "Assigned %d functions (%d seeded, %d by affinity, %d fallback) in %d rounds",
            len(order), stats["seed"], stats["affinity"], stats["fallback"], rounds,
        )
        return result

    def score(
        self,
        func_id: str,
        module: ModuleDefinition,
        call_graph: CallGraph,
        assigned: Dict[str, ModuleAssignment],
        names: Sequence[str] = (),
    ) -> float:
        cfg = self.config
        neighbors = call_graph.neighbors(func_id)
        fraction = 0.0
        if neighbors:
            inside = sum(
                1 for n in neighbors
                if n in assigned and assigned[n].module == module.name
            )
            fraction = inside / len(neighbors)
        keyword = 1.0 if _matches_keywords(names or (func_id,), module.keywords) else 0.0
        seeded = 1.0 if func_id in module.seed_functions else 0.0
        return cfg.w1 * fraction + cfg.w2 * keyword + cfg.w3 * seeded

    def _best_module(
        self,
        func_id: str,
        names: Sequence[str],
        call_graph: CallGraph,
        assigned: Dict[str, ModuleAssignment],
    ) -> Tuple[Optional[str], float]:
        best: Optional[str] = None
        best_score = 0.0
        for module in self.modules:
            score = self.score(func_id, module, call_graph, assigned, names)
            if score > best_score:
                best, best_score = module.name, score
        return best, best_score

    @staticmethod
    def _known_names(order: Sequence[str], symbols: Optional[SymbolTable]) -> Dict[str, List[str]]:
        """Every name a function goes by: its id plus aliases bound to it."""
        names: Dict[str, List[str]] = {f: [f] for f in order}
        if symbols is None:
            return names
        for name in symbols:
            for alias in symbols.alias_chain(name):
                if alias in names and name not in names[alias]:
                    names[alias].append(name)
        return names


def _matches_keywords(names: Iterable[str], keywords: Iterable[str]) -> bool:
    lowered = [k.lower() for k in keywords]
    return any(k in name.lower() for name in names for k in lowered)
