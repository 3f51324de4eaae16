"""Parallelism limits."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field

#: Amount of RAM reserved for the system, in MB.
EVAL_RESERVE_MB = 1024

#: Estimated amount of RAM needed to evaluate one host, in MB.
EVAL_PER_HOST_MB = 512

_FALLBACK_LIMIT = 10
_NUMBER = re.compile(r"\+?[0-9]+")


@dataclass
class ParallelismLimit:
    """The parallelism limit for a deployment."""

    evaluation: asyncio.Semaphore = field(default_factory=lambda: asyncio.Semaphore(1))
    apply: asyncio.Semaphore = field(default_factory=lambda: asyncio.Semaphore(10))

    def set_apply_limit(self, limit: int) -> None:
        """Sets the concurrent apply limit."""
        self.apply = asyncio.Semaphore(limit)


@dataclass(frozen=True)
class EvaluationNodeLimit:
    """Limit of the number of nodes in each evaluation process.

    ``nodes`` is None for the memory-based heuristic, 0 for no limit,
    and otherwise the maximum number of nodes.
    """

    nodes: int | None = None

    @classmethod
    def parse(cls, s: str) -> EvaluationNodeLimit:
        """Parses ``auto`` or a non-negative number."""
        if s == "auto":
            return cls()
        if not _NUMBER.fullmatch(s):
            raise ValueError("The value must be a valid number or `auto`")
        return cls(int(s))

    def __str__(self) -> str:
        return "auto" if self.nodes is None else str(self.nodes)

    def get_limit(self) -> int | None:
        """Returns the maximum number of hosts in each evaluation, or None."""
        if self.nodes is None:
            available = _available_memory_kb()
            if available is None:
                return _FALLBACK_LIMIT
            return _nodes_for_memory(available)
        if self.nodes == 0:
            return None
        return self.nodes


def _nodes_for_memory(available_kb: int) -> int:
    mb = available_kb // 1024
    if mb >= EVAL_RESERVE_MB:
        mb -= EVAL_RESERVE_MB
    return max(mb // EVAL_PER_HOST_MB, 1)


def _available_memory_kb() -> int | None:
    try:
        with open("/proc/meminfo", encoding="ascii") as meminfo:
            for line in meminfo:
                key, _, rest = line.partition(":")
                if key == "MemAvailable":
                    return int(rest.split()[0])
    except (OSError, ValueError, IndexError):
        return None
    return None