"""Nix expressions and their serialisation."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any


class NixExpression(ABC):
    """A Nix expression that can be evaluated."""

    @abstractmethod
    def expression(self) -> str:
        """Returns the full Nix expression to be evaluated."""

    def requires_flakes(self) -> bool:
        """Returns whether this expression requires the use of flakes."""
        return False


class RawNixExpression(NixExpression):
    """An expression given as literal Nix source."""

    def __init__(self, text: str) -> None:
        self.text = text

    def expression(self) -> str:
        return self.text


class SerializedNixExpression(NixExpression):
    """Arbitrary JSON-serialisable data embedded in a Nix expression."""

    def __init__(self, data: Any) -> None:
        encoded = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
        self._quoted = nix_quote(encoded)

    def expression(self) -> str:
        return f"(builtins.fromJSON {self._quoted})"


def nix_quote(s: str) -> str:
    """Turns a string into a quoted Nix string expression."""
    inner = s.replace("\\", "\\\\").replace('"', '\\"').replace("${", "\\${")
    return f'"{inner}"'