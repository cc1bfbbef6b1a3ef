"""Fallback chain resolver.

Tries an ordered list of alternative data sources until one yields a
non-empty result. A stage that raises, times out, or returns nothing is a
"no result" and the chain moves on; running out of stages gives an empty
result, never an exception.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from ptgen_gateway.errors import UpstreamTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_STAGE_TIMEOUT = 10.0


@dataclass(frozen=True)
class FallbackStage:
    """One alternative in a chain.

    Attributes:
        name: Label used in logs and reported on success
        run: Zero-argument coroutine factory producing the stage result
        timeout: Seconds before the stage is cancelled
    """

    name: str
    run: Callable[[], Awaitable[Any]]
    timeout: float = DEFAULT_STAGE_TIMEOUT


@dataclass(frozen=True)
class FallbackResult:
    """Outcome of a chain: the first non-empty value and the stage that produced it."""

    value: Any = None
    stage: str | None = None
    errors: tuple[BaseException, ...] = ()

    @property
    def found(self) -> bool:
        return self.stage is not None

    @classmethod
    def empty(cls) -> "FallbackResult":
        return cls()

    def first_error(self, kind: type[BaseException] = Exception) -> BaseException | None:
        return next((e for e in self.errors if isinstance(e, kind)), None)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple, dict, str)):
        return len(value) == 0
    return False


class FallbackChain:
    """Ordered stages resolved first-non-empty-wins.

    Example:
        ```python
        chain = FallbackChain(
            [
                FallbackStage("suggestion", lambda: suggest(query), timeout=5),
                FallbackStage("find-page", lambda: scrape(query), timeout=10),
            ],
            label="imdb-search",
        )
        result = await chain.resolve()
        hits = result.value if result.found else []
        ```
    """

    def __init__(self, stages: Sequence[FallbackStage], label: str = "fallback") -> None:
        self._stages = list(stages)
        self._label = label

    async def resolve(self) -> FallbackResult:
        """Run the stages in order.

        Returns:
            The first non-empty stage result. When every stage comes up empty
            the result is not ``found`` and carries the stage errors.
        """
        errors: list[BaseException] = []
        for stage in self._stages:
            try:
                value = await asyncio.wait_for(stage.run(), timeout=stage.timeout)
            except asyncio.TimeoutError:
                logger.warning("[%s] stage %s timed out after %.1fs", self._label, stage.name, stage.timeout)
                errors.append(UpstreamTimeoutError(f"{stage.name} timed out"))
                continue
            except Exception as e:
                logger.warning("[%s] stage %s failed: %s", self._label, stage.name, e)
                errors.append(e)
                continue

            if _is_empty(value):
                logger.info("[%s] stage %s returned no results", self._label, stage.name)
                continue

            logger.info("[%s] resolved by stage %s", self._label, stage.name)
            return FallbackResult(value=value, stage=stage.name)

        logger.info("[%s] all %d stages exhausted", self._label, len(self._stages))
        return FallbackResult(errors=tuple(errors))

    @property
    def stages(self) -> list[FallbackStage]:
        return list(self._stages)
