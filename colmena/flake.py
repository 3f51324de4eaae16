"""Nix Flake utilities."""

from __future__ import annotations

import asyncio
import json
import os
from dataclasses import dataclass
from pathlib import Path

from .errors import BadOutput, IoError, from_exit_status

_EXPERIMENTAL = ["--extra-experimental-features", "nix-command flakes"]


@dataclass(frozen=True)
class FlakeMetadata:
    """The output of ``nix flake metadata --json``."""

    resolved_url: str
    url: str

    @classmethod
    async def resolve(cls, flake: str) -> FlakeMetadata:
        """Resolves a flake reference with Nix."""
        try:
            process = await asyncio.create_subprocess_exec(
                "nix",
                "flake",
                "metadata",
                "--json",
                *_EXPERIMENTAL,
                flake,
                stdout=asyncio.subprocess.PIPE,
            )
            stdout, _ = await process.communicate()
        except OSError as error:
            raise IoError(error) from error

        if process.returncode != 0:
            raise from_exit_status(process.returncode)

        return cls._from_json(stdout)

    @classmethod
    def _from_json(cls, raw: bytes) -> FlakeMetadata:
        bad = BadOutput(raw.decode("utf-8", errors="replace"))
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise bad from None
        if not isinstance(data, dict):
            raise bad
        resolved_url = data.get("resolvedUrl")
        url = data.get("url")
        if not isinstance(resolved_url, str) or not isinstance(url, str):
            raise bad
        return cls(resolved_url=resolved_url, url=url)


@dataclass(frozen=True)
class Flake:
    """A Nix Flake, with the directory it lives in if it is local."""

    metadata: FlakeMetadata
    local_dir: Path | None = None

    @classmethod
    async def from_dir(cls, directory: str | os.PathLike[str]) -> Flake:
        """Creates a flake from a local directory."""
        metadata = await FlakeMetadata.resolve(os.fspath(directory))
        return cls(metadata, Path(directory))

    @classmethod
    async def from_uri(cls, uri: str) -> Flake:
        """Creates a flake from a Flake URI."""
        return cls(await FlakeMetadata.resolve(uri))

    def uri(self) -> str:
        """Returns the resolved URI."""
        return self.metadata.resolved_url

    def locked_uri(self) -> str:
        """Returns the locked URI; it is not locked if the git tree is dirty."""
        return self.metadata.url


async def lock_flake_quiet(uri: str) -> None:
    """Locks the dependencies of a flake, discarding Nix's messages."""
    try:
        process = await asyncio.create_subprocess_exec(
            "nix",
            "flake",
            "lock",
            *_EXPERIMENTAL,
            uri,
            stderr=asyncio.subprocess.DEVNULL,
        )
        returncode = await process.wait()
    except OSError as error:
        raise IoError(error) from error

    if returncode != 0:
        raise from_exit_status(returncode)