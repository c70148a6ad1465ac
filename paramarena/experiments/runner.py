"""Bounded-concurrency invocation of a target function over combinations."""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

from paramarena.ratings.keys import Combination, combination_key

logger = logging.getLogger(__name__)

TargetFunction = Callable[[Combination], Union[Any, Awaitable[Any]]]

CANCELLED_MESSAGE = "Cancelled before invocation"


@dataclass
class ExperimentResult:
    """Outcome of invoking the target function for one combination."""

    combination: Combination
    value: Any = None
    error: Optional[str] = None
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def key(self) -> str:
        return combination_key(self.combination)


def describe_error(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


class InvocationRunner:
    """Runs the target function once per combination.

    Failures are captured on the corresponding result and never abort the sweep.
    Results are returned in combination order regardless of completion order.
    """

    def __init__(self, max_concurrency: int = 5) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency

    async def run(
        self,
        combinations: Sequence[Combination],
        target_fn: TargetFunction,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[ExperimentResult]:
        """Invoke ``target_fn`` for every combination.

        Args:
            combinations: Combinations to invoke, in grid order
            target_fn: Async (or plain) callable taking a combination; plain
                callables run in worker threads
            cancel_event: When set, invocations that have not started yet are
                skipped and reported as cancelled; running ones finish

        Returns:
            One ExperimentResult per combination, in the same order
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)
        total = len(combinations)
        logger.info(
            "Invoking target for %d combinations (max_concurrency=%d)", total, self.max_concurrency
        )

        async def invoke(idx: int, combination: Combination) -> ExperimentResult:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    logger.debug("Skipping %s: sweep cancelled", combination_key(combination))
                    return ExperimentResult(
                        combination=combination, error=CANCELLED_MESSAGE, cancelled=True
                    )
                logger.debug("Running combination %d/%d: %s", idx, total, combination_key(combination))
                try:
                    if inspect.iscoroutinefunction(target_fn):
                        value = await target_fn(dict(combination))
                    else:
                        value = await asyncio.to_thread(target_fn, dict(combination))
                        if inspect.isawaitable(value):
                            value = await value
                except Exception as exc:
                    logger.exception("Error invoking target for %s", combination_key(combination))
                    return ExperimentResult(combination=combination, error=describe_error(exc))
                return ExperimentResult(combination=combination, value=value)

        results = await asyncio.gather(
            *(invoke(idx, combination) for idx, combination in enumerate(combinations, 1))
        )

        failures = sum(1 for r in results if not r.success and not r.cancelled)
        cancelled = sum(1 for r in results if r.cancelled)
        if failures or cancelled:
            logger.warning(
                "Sweep finished with %d failed and %d cancelled invocations", failures, cancelled
            )
        return list(results)
