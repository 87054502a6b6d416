"""Cancellation scopes bounding how long a phase may wait on the cluster."""

import asyncio


class RunContext:
    """Cooperative cancellation scope.

    Waits bound to a context return early once it is cancelled. A context
    created with ``cancellable=False`` ignores cancellation, which is what
    cleanup work and the post phase run under.
    """

    def __init__(self, cancellable: bool = True) -> None:
        """Initialize an active context."""
        self.cancellable = cancellable
        self._done = asyncio.Event()

    @classmethod
    def background(cls) -> "RunContext":
        """Return a fresh context that is never cancelled."""
        return cls(cancellable=False)

    def cancel(self) -> None:
        """Cancel the context, waking up everything waiting on it."""
        if self.cancellable:
            self._done.set()

    @property
    def cancelled(self) -> bool:
        """Whether the context has been cancelled."""
        return self._done.is_set()

    async def wait(self) -> None:
        """Block until the context is cancelled."""
        await self._done.wait()
