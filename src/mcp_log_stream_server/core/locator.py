"""Resolve a log target to concrete stream sources."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from .models import LogTarget, Source
from .transport import DiscoveryError, LogTransport

logger = logging.getLogger(__name__)


class SourceLocator(Protocol):
    """Resolves a target to its sources; called once per session, again only after discovery failed."""

    fan_out: bool

    async def resolve(self) -> list[Source]:
        ...


@dataclass(frozen=True, slots=True)
class PodLocator:
    """A single named pod; no listing call required."""

    target: LogTarget
    fan_out: bool = False

    async def resolve(self) -> list[Source]:
        return [Source(namespace=self.target.namespace, name=self.target.name)]


@dataclass(frozen=True, slots=True)
class SelectorLocator:
    """Every pod matching a label selector, discovered through one listing call."""

    target: LogTarget
    transport: LogTransport
    fan_out: bool = True

    async def resolve(self) -> list[Source]:
        selector = self.target.label_selector or ""
        try:
            sources = await self.transport.list_pods(self.target.namespace, selector)
        except DiscoveryError:
            raise
        except Exception as exc:
            raise DiscoveryError(f"Failed to fetch pods: {exc}") from exc

        if not sources:
            raise DiscoveryError(
                f"No pods found for deployment {self.target.name} "
                f"with label selector {selector}"
            )
        logger.debug("Resolved %d source(s) for selector %s", len(sources), selector)
        return sources


def locator_for(target: LogTarget, transport: LogTransport) -> SourceLocator:
    if target.fan_out:
        return SelectorLocator(target=target, transport=transport)
    return PodLocator(target=target)
