"""
Deferred Values
===============

A promise-like container for values produced asynchronously by replacers
and revivers.

A DeferredValue is built either from an awaitable or from an executor
``executor(resolve, reject)`` that runs immediately. It settles once,
flattens awaitables it is resolved with, and can be awaited any number of
times. Awaitable sources start running on first await.

Every class carries the ``__typeweave_type__`` tag, so :func:`is_deferred`
recognises instances created by another loaded copy of this module.

Example
-------
>>> async def main():
...     first = DeferredValue(asyncio.sleep(0.01, result=1))
...     second = DeferredValue.resolve(2).then(lambda value: value * 10)
...     return await DeferredValue.all([first, second])
>>> asyncio.run(main())
[1, 20]
"""

from __future__ import annotations

import asyncio
import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional

from typeweave.core.classify import has_constructor_of


class DeferredState(str, Enum):
    """Settlement state of a DeferredValue."""

    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


class DeferredRejection(Exception):
    """Raised in place of a rejection reason that is not an exception."""

    def __init__(self, reason: Any):
        super().__init__(reason)
        self.reason = reason


Executor = Callable[[Callable[[Any], None], Callable[[Any], None]], Any]


class DeferredValue:
    """
    Single-assignment asynchronous result.

    Parameters
    ----------
    source : awaitable or callable
        An awaitable to adopt, or an executor called immediately with
        ``resolve`` and ``reject`` callbacks. An executor that raises
        rejects the value.

    Raises
    ------
    TypeError
        If ``source`` is neither awaitable nor callable.
    """

    __typeweave_type__ = "DeferredValue"

    def __init__(self, source: "Awaitable[Any] | Executor"):
        self._state = DeferredState.PENDING
        self._value: Any = None
        self._error: Optional[BaseException] = None
        self._source: Optional[Awaitable[Any]] = None
        self._task: Optional[asyncio.Future] = None
        self._waiters: list[asyncio.Future] = []
        self._locked = False

        if inspect.isawaitable(source):
            self._locked = True
            self._source = source
        elif callable(source):
            try:
                source(self._resolve, self._reject)
            except Exception as exc:
                self._reject(exc)
        else:
            raise TypeError("DeferredValue requires an awaitable or an executor callable")

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> DeferredState:
        return self._state

    @property
    def settled(self) -> bool:
        return self._state is not DeferredState.PENDING

    def _resolve(self, value: Any = None) -> None:
        if self._locked:
            return
        self._locked = True
        self._adopt(value)

    def _reject(self, reason: Any = None) -> None:
        if self._locked:
            return
        self._locked = True
        self._settle(DeferredState.REJECTED, _as_exception(reason))

    def _adopt(self, value: Any) -> None:
        if value is self:
            self._settle(DeferredState.REJECTED, TypeError("DeferredValue cannot resolve to itself"))
        elif inspect.isawaitable(value):
            self._source = value
            self._wake()
        else:
            self._settle(DeferredState.FULFILLED, value)

    def _settle(self, state: DeferredState, payload: Any) -> None:
        if self.settled:
            return
        self._state = state
        if state is DeferredState.REJECTED:
            self._error = payload
        else:
            self._value = payload
        self._wake()

    def _wake(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    # =========================================================================
    # Awaiting
    # =========================================================================

    def __await__(self):
        return self._wait().__await__()

    async def _wait(self) -> Any:
        while not self.settled:
            if self._source is not None and self._task is None:
                source, self._source = self._source, None
                self._task = asyncio.ensure_future(self._run_source(source))
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            await waiter
        if self._state is DeferredState.REJECTED:
            raise self._error
        return self._value

    async def _run_source(self, source: Awaitable[Any]) -> None:
        try:
            value = await source
        except Exception as exc:
            self._task = None
            self._settle(DeferredState.REJECTED, exc)
            return
        self._task = None
        self._adopt(value)

    # =========================================================================
    # Chaining
    # =========================================================================

    def then(
        self,
        on_fulfilled: Optional[Callable[[Any], Any]] = None,
        on_rejected: Optional[Callable[[BaseException], Any]] = None,
    ) -> "DeferredValue":
        """
        Chain handlers onto this value.

        The returned DeferredValue settles with the handler's result,
        flattening it when it is awaitable. A handler that raises rejects
        the returned value. Missing handlers pass the outcome through.
        """
        return type(self)(self._chain(on_fulfilled, on_rejected))

    def catch(self, on_rejected: Callable[[BaseException], Any]) -> "DeferredValue":
        """Chain a rejection handler; fulfilment passes through unchanged."""
        return self.then(None, on_rejected)

    async def _chain(self, on_fulfilled, on_rejected) -> Any:
        try:
            value = await self
        except Exception as exc:
            if on_rejected is None:
                raise
            return on_rejected(exc)
        if on_fulfilled is None:
            return value
        return on_fulfilled(value)

    # =========================================================================
    # Combinators
    # =========================================================================

    @classmethod
    def resolve(cls, value: Any = None) -> "DeferredValue":
        """A DeferredValue fulfilled with ``value`` (adopting it if awaitable)."""
        return cls(lambda resolve, reject: resolve(value))

    @classmethod
    def reject(cls, reason: Any = None) -> "DeferredValue":
        """A DeferredValue rejected with ``reason``."""
        return cls(lambda resolve, reject: reject(reason))

    @classmethod
    def all(cls, values: Iterable[Any]) -> "DeferredValue":
        """Fulfil with every result in input order, or reject with the first failure."""
        items = list(values)

        async def gather() -> list[Any]:
            return list(await asyncio.gather(*(_settle_item(item) for item in items)))

        return cls(gather())

    @classmethod
    def race(cls, values: Iterable[Any]) -> "DeferredValue":
        """
        Settle like the first input to settle.

        Inputs settling in the same loop iteration are ranked by input order.

        Raises
        ------
        ValueError
            If ``values`` is empty.
        """
        items = list(values)
        if not items:
            raise ValueError("race() requires at least one value")

        async def first() -> Any:
            tasks = [asyncio.ensure_future(_settle_item(item)) for item in items]
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in tasks:
                if task not in done:
                    task.add_done_callback(_consume_outcome)
            winner = next(task for task in tasks if task in done)
            for task in done:
                if task is not winner:
                    _consume_outcome(task)
            return winner.result()

        return cls(first())

    @classmethod
    def all_settled(cls, values: Iterable[Any]) -> "DeferredValue":
        """Fulfil with a status record per input once every input settles."""
        items = list(values)

        async def outcome(item: Any) -> dict[str, Any]:
            try:
                return {"status": DeferredState.FULFILLED.value, "value": await _settle_item(item)}
            except Exception as exc:
                return {"status": DeferredState.REJECTED.value, "reason": exc}

        async def gather() -> list[dict[str, Any]]:
            return list(await asyncio.gather(*(outcome(item) for item in items)))

        return cls(gather())

    def __repr__(self) -> str:
        if self._state is DeferredState.FULFILLED:
            return f"DeferredValue(fulfilled={self._value!r})"
        if self._state is DeferredState.REJECTED:
            return f"DeferredValue(rejected={self._error!r})"
        return "DeferredValue(pending)"


def is_deferred(value: Any) -> bool:
    """Check for a DeferredValue from any loaded copy of this module."""
    return has_constructor_of(value, DeferredValue)


async def _settle_item(item: Any) -> Any:
    """Await nested awaitables until a plain value remains."""
    while inspect.isawaitable(item):
        item = await item
    return item


def _consume_outcome(task: asyncio.Future) -> None:
    """Mark a losing race entry's outcome as retrieved."""
    if not task.cancelled():
        task.exception()


def _as_exception(reason: Any) -> BaseException:
    if isinstance(reason, BaseException):
        return reason
    return DeferredRejection(reason)
