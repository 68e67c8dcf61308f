# app/gateway/router.py
"""Resolve inbound gateway paths to registered origin APIs."""
from dataclasses import dataclass
from typing import Optional, Union

from app.gateway.registry import Registry, RegistryEntry


@dataclass(frozen=True)
class Matched:
    entry: RegistryEntry
    remainder: str


@dataclass(frozen=True)
class Unmatched:
    path: str


RouteResolution = Union[Matched, Unmatched]


class Router:
    """
    Thin layer over Registry.resolve() returning a tagged result.

    A path equal to "/{slug}" with no trailing segment never matches;
    callers must send at least "/{slug}/".
    """

    def __init__(self, registry: Registry):
        self._registry = registry

    def match(self, path: str) -> RouteResolution:
        resolved = self._registry.resolve(path)
        if resolved is None:
            return Unmatched(path=path)
        entry, remainder = resolved
        return Matched(entry=entry, remainder=remainder)


def slug_from_path(path: str) -> Optional[str]:
    """First path segment, used for error reporting on unmatched routes."""
    segments = [s for s in path.split("/") if s]
    return segments[0] if segments else None
