import asyncio
import functools
import inspect
from typing import Callable, Coroutine, ParamSpec, TypeVar

R = TypeVar("R")
P = ParamSpec("P")


def thread_dispatch(fn: Callable[P, R]) -> Callable[P, Coroutine[None, None, R]]:
    """
    A decorator to transform a blocking function (e.g. a database driver call) into an asynchronous function.

    The function runs in a worker thread such that the event loop is not blocked while it waits on I/O. Calls that
    share a driver connection must be awaited one after the other.
    """

    if not callable(fn):
        raise TypeError("expected: a callable")

    if inspect.iscoroutinefunction(fn):
        raise TypeError("expected: a regular function; got: an async function")

    @functools.wraps(fn)
    async def invoke(*args: P.args, **kwargs: P.kwargs) -> R:
        return await asyncio.to_thread(fn, *args, **kwargs)

    return invoke
