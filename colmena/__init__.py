"""Goals, limits, options, Nix expressions, job monitoring, evaluation and flakes for NixOS deployments."""

__version__ = "0.5.0"

__all__ = [
    "errors",
    "evaluator",
    "expression",
    "flake",
    "goal",
    "jobs",
    "limits",
    "monitor",
    "options",
]