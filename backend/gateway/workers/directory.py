"""
Execution Unit Directory

Resolves a selector to one worker ("execution unit") and exposes
``fetch()`` against it. Selection strategies:

  ByIdentifier(name)    same name → same unit, every time
  RandomFromPool(size)  one of ``instance-0 … instance-{size-1}``, at random
  FixedSingleton(name)  one well-known name

Every strategy reduces to a name; names map onto the configured worker base
URLs by SHA-256 modulo pool size, so the mapping is stable across processes
and restarts as long as the URL list is unchanged.

Creating, starting and stopping workers is outside this module.
"""

from __future__ import annotations

import hashlib
import logging
import random
from abc import ABC, abstractmethod
from typing import Any, Mapping

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Selection strategies
# ---------------------------------------------------------------------------

class UnitSelector(ABC):
    """Picks the logical name of the unit a request should reach."""

    @abstractmethod
    def resolve_name(self) -> str:
        ...


class ByIdentifier(UnitSelector):
    def __init__(self, name: str) -> None:
        self.name = name

    def resolve_name(self) -> str:
        return self.name


class RandomFromPool(UnitSelector):
    def __init__(self, size: int, rng: random.Random | None = None) -> None:
        if size < 1:
            raise ValueError("pool size must be >= 1")
        self.size = size
        self._rng = rng or random.Random()

    def resolve_name(self) -> str:
        return f"instance-{self._rng.randrange(self.size)}"


class FixedSingleton(UnitSelector):
    def __init__(self, name: str = "singleton") -> None:
        self.name = name

    def resolve_name(self) -> str:
        return self.name


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------

class ExecutionUnit:
    """A resolved worker. Thin wrapper over the directory's shared client."""

    def __init__(self, name: str, base_url: str, client: httpx.AsyncClient) -> None:
        self.name = name
        self.base_url = base_url.rstrip("/")
        self._client = client

    async def fetch(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
        params: Any = None,
    ) -> httpx.Response:
        """
        Send one request to this unit.

        Raises:
            httpx.RequestError: the unit could not be reached.
        """
        url = f"{self.base_url}{path}"
        logger.debug("Unit fetch | unit=%s %s %s", self.name, method, url)
        return await self._client.request(
            method,
            url,
            json=json,
            content=content,
            headers=headers,
            params=params,
        )

    def __repr__(self) -> str:
        return f"ExecutionUnit(name={self.name!r}, base_url={self.base_url!r})"


class ExecutionUnitDirectory:
    """Maps selectors onto worker base URLs."""

    def __init__(self, base_urls: list[str], client: httpx.AsyncClient) -> None:
        if not base_urls:
            raise ValueError("at least one worker URL is required")
        self._urls = list(base_urls)
        self._client = client

    def get(self, selector: UnitSelector) -> ExecutionUnit:
        name = selector.resolve_name()
        digest = hashlib.sha256(name.encode("utf-8")).digest()
        index = int.from_bytes(digest[:8], "big") % len(self._urls)
        return ExecutionUnit(name=name, base_url=self._urls[index], client=self._client)

    async def aclose(self) -> None:
        await self._client.aclose()
