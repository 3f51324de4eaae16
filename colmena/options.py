"""Deployment options."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EvaluatorType(Enum):
    """Which evaluator to use."""

    CHUNKED = "chunked"
    STREAMING = "streaming"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class CopyOptions:
    """Options for copying a closure between hosts."""

    use_substitutes: bool = True
    gzip: bool = True
    include_outputs: bool = False


@dataclass
class Options:
    """Options for a deployment."""

    substituters_push: bool = True
    gzip: bool = True
    upload_keys: bool = True
    reboot: bool = False
    create_gc_roots: bool = False
    force_build_on_target: bool | None = None
    force_replace_unknown_profiles: bool = False
    evaluator: EvaluatorType = EvaluatorType.CHUNKED

    def to_copy_options(self) -> CopyOptions:
        """Returns the options used when pushing closures."""
        return CopyOptions(use_substitutes=self.substituters_push, gzip=self.gzip)