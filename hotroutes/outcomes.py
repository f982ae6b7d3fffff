"""Continuations and results at the dispatch boundary.

Handlers signal what happened in one of three ways: they respond and return,
they call ``next_()`` to pass the request on, or they fail, either by raising
or by calling ``next_(error)``. ``invoke`` turns all of these into an
``Outcome`` so the error bridge has a single value to act on.
"""

import inspect
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any


class Next:
    """Continuation handed to middleware and operations."""

    def __init__(self):
        self.called = False
        self.error: BaseException | None = None

    def __call__(self, error: BaseException | None = None) -> None:
        self.called = True
        self.error = error


class OutcomeKind(Enum):
    DONE = "done"
    PASSED = "passed"
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    error: BaseException | None = None
    message: str | None = None
    thrown: bool = False

    @classmethod
    def done(cls) -> "Outcome":
        return cls(OutcomeKind.DONE)

    @classmethod
    def passed(cls) -> "Outcome":
        return cls(OutcomeKind.PASSED)

    @classmethod
    def failed(cls, error: BaseException, message: str | None = None, thrown: bool = False) -> "Outcome":
        return cls(OutcomeKind.FAILED, error, message, thrown)

    @property
    def is_done(self) -> bool:
        return self.kind is OutcomeKind.DONE

    @property
    def is_passed(self) -> bool:
        return self.kind is OutcomeKind.PASSED

    @property
    def is_failed(self) -> bool:
        return self.kind is OutcomeKind.FAILED


async def invoke(func: Callable[..., Any], *args: Any) -> Outcome:
    """Call a sync or async handler with a fresh ``Next`` appended to ``args``."""
    next_ = Next()
    try:
        result = func(*args, next_)
        if inspect.isawaitable(result):
            await result
    except Exception as exc:
        return Outcome.failed(exc, thrown=True)

    if next_.error is not None:
        return Outcome.failed(next_.error)

    if next_.called:
        return Outcome.passed()

    return Outcome.done()


async def run_chain(handlers: Iterable[Callable[..., Any]], *args: Any) -> Outcome:
    """Run handlers in order, stopping at the first one that does not continue.

    Returns the outcome of the last handler that ran; an empty chain passes.
    """
    outcome = Outcome.passed()
    for handler in handlers:
        outcome = await invoke(handler, *args)
        if not outcome.is_passed:
            break

    return outcome
