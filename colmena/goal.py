"""Deployment goals."""

from __future__ import annotations

from enum import Enum


class Goal(Enum):
    """The goal of a deployment."""

    BUILD = "build"
    PUSH = "push"
    SWITCH = "switch"
    BOOT = "boot"
    TEST = "test"
    DRY_ACTIVATE = "dry-activate"
    UPLOAD_KEYS = "keys"

    @classmethod
    def from_str(cls, s: str) -> Goal:
        """Parses a goal name as given on the command line."""
        try:
            return cls(s)
        except ValueError:
            raise ValueError(
                "Not one of [build, push, switch, boot, test, dry-activate, keys]."
            ) from None

    def __str__(self) -> str:
        return self.value

    def as_str(self) -> str | None:
        """Returns the switch-to-configuration target, if there is one."""
        if self in (Goal.BUILD, Goal.PUSH):
            return None
        return self.value

    def success_str(self) -> str:
        """Returns the message shown when the goal was reached."""
        return _SUCCESS_MESSAGES[self]

    def should_switch_profile(self) -> bool:
        return self in (Goal.BOOT, Goal.SWITCH)

    def requires_activation(self) -> bool:
        return self not in (Goal.BUILD, Goal.UPLOAD_KEYS, Goal.PUSH)

    def persists_after_reboot(self) -> bool:
        return self in (Goal.SWITCH, Goal.BOOT)

    def requires_target_host(self) -> bool:
        return self is not Goal.BUILD


_SUCCESS_MESSAGES = {
    Goal.BUILD: "Configuration built",
    Goal.PUSH: "Pushed",
    Goal.SWITCH: "Activation successful",
    Goal.BOOT: "Will be activated next boot",
    Goal.TEST: "Activation successful (test)",
    Goal.DRY_ACTIVATE: "Dry activation successful",
    Goal.UPLOAD_KEYS: "Uploaded keys",
}