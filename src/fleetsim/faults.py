"""Transport fault injection.

Every sensor request passes through the FaultGate before its handler runs.
The gate first sleeps for a random request delay to simulate network
latency, then makes one weighted draw over the configured fault rates:

  1. hang        -> the request never completes
  2. bad_gateway -> 502 with an empty body
  3. close       -> the connection is dropped without any HTTP response
  4. text_error  -> 500 with a plain-text body that is not JSON

If no fault is drawn the request continues to its handler unchanged. In
reliable mode every rate is zero and the gate only applies the delay.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, MutableMapping, Sequence
from typing import Any, Generic, TypeVar

from fastapi import Request

from fleetsim.clock import Clock
from fleetsim.models import FaultKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

ERROR_TEXT_CONTENT = "This site is inaccessible. Please try again."

# Set in the ASGI scope when the current connection must be dropped.
DROP_CONNECTION_KEY = "fleetsim.drop_connection"

Scope = MutableMapping[str, Any]
Message = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]


class WeightedChoice(Generic[T]):
    """Pick at most one outcome from an ordered list of probabilities.

    A single uniform draw in [0, 1) is compared against the running sum of
    the probabilities; the first outcome whose cumulative weight exceeds the
    draw wins. When the draw lands past the total weight, nothing is picked.
    """

    def __init__(self, options: Sequence[tuple[float, T]], rng: random.Random | None = None) -> None:
        """Initialize the chooser.

        Args:
            options: Ordered (probability, outcome) pairs.
            rng: Random source for draws.

        Raises:
            ValueError: If a probability is negative or they sum past 1.0.
        """
        for probability, outcome in options:
            if probability < 0.0:
                raise ValueError(f"Probability for {outcome!r} must be >= 0, got {probability}")
        total = sum(p for p, _ in options)
        if total > 1.0 + 1e-9:
            raise ValueError(f"Probabilities must sum to at most 1.0, got {total}")
        self.options = list(options)
        self.total = total
        self._rng = rng or random.Random()

    def pick(self, draw: float | None = None) -> T | None:
        """Return the selected outcome, or None when no outcome triggers.

        Args:
            draw: A value in [0, 1) to use instead of a fresh random draw.
        """
        if draw is None:
            draw = self._rng.random()
        cumulative = 0.0
        for probability, outcome in self.options:
            cumulative += probability
            if draw < cumulative:
                return outcome
        return None


class InjectedFault(Exception):
    """Raised by the gate to replace a handler's response with a fault."""

    def __init__(self, kind: FaultKind) -> None:
        super().__init__(f"injected fault: {kind}")
        self.kind = kind


class FaultGate:
    """Request delay plus fault draw, used as a FastAPI dependency."""

    def __init__(
        self,
        clock: Clock,
        rates: Sequence[tuple[float, FaultKind]],
        *,
        request_delay_min_ms: float = 0,
        request_delay_max_ms: float = 1000,
        rng: random.Random | None = None,
    ) -> None:
        self.clock = clock
        self._rng = rng or random.Random()
        self.choice: WeightedChoice[FaultKind] = WeightedChoice(rates, rng=self._rng)
        self.request_delay_min_ms = request_delay_min_ms
        self.request_delay_max_ms = request_delay_max_ms
        self._hung: set[asyncio.Future[None]] = set()

    @property
    def enabled(self) -> bool:
        """True if any fault has a non-zero rate."""
        return self.choice.total > 0.0

    @property
    def hung_requests(self) -> int:
        """Number of requests currently held open by a hang fault."""
        return len(self._hung)

    def request_delay(self) -> float:
        """Draw a request delay, in seconds."""
        return self._rng.uniform(self.request_delay_min_ms, self.request_delay_max_ms) / 1000.0

    def roll(self) -> FaultKind | None:
        """Draw the fault for one request, or None to let it through."""
        return self.choice.pick()

    async def __call__(self, request: Request) -> None:
        await self.clock.sleep(self.request_delay())

        fault = self.roll()
        if fault is None:
            return

        logger.debug("Injecting %s into %s %s", fault, request.method, request.url.path)
        if fault == FaultKind.HANG:
            await self.hang()
        raise InjectedFault(fault)

    async def hang(self) -> None:
        """Suspend forever, or until ``release_hung()`` cancels the wait."""
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._hung.add(future)
        try:
            await future
        finally:
            self._hung.discard(future)

    def release_hung(self) -> int:
        """Cancel every hung request. Called when the server shuts down.

        Returns:
            The number of requests released.
        """
        hung = list(self._hung)
        for future in hung:
            future.cancel()
        return len(hung)


class ConnectionDropper:
    """Outermost ASGI wrapper that can drop a connection with no response.

    ASGI has no message for closing a connection without responding. Once a
    handler flags the scope with DROP_CONNECTION_KEY, every message it sends
    is discarded and the wrapper aborts the server transport. Under an
    in-process test transport there is no socket to abort, so the drop
    surfaces to the client as ConnectionAbortedError instead.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def guarded_send(message: Message) -> None:
            if scope.get(DROP_CONNECTION_KEY):
                return
            await send(message)

        await self.app(scope, receive, guarded_send)

        if scope.get(DROP_CONNECTION_KEY):
            await _abort_connection(send)


async def _abort_connection(send: Send) -> None:
    # uvicorn hands the app a bound method of its request cycle, which holds
    # the connection transport.
    cycle = getattr(send, "__self__", None)
    transport = getattr(cycle, "transport", None)
    if transport is None:
        raise ConnectionAbortedError("connection dropped by fault injection")
    transport.abort()
    # Let the protocol observe connection_lost before the server inspects
    # the finished request cycle.
    await asyncio.sleep(0)
