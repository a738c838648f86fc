"""Async request/response prompts.

Replaces blocking ``confirm()``/``prompt()`` dialogs: the tracker asks a
question, a UI layer (or a test) answers it later, and nobody blocks the
event loop in between.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from fleetsync.models._base import FleetEnum

_logger = logging.getLogger(__name__)

_request_ids = itertools.count(1)


class PromptKind(FleetEnum):
    CONFIRM = "confirm"
    TEXT = "text"


@dataclass(frozen=True)
class PromptRequest:
    request_id: int
    kind: PromptKind
    message: str


@dataclass(frozen=True)
class PromptResponse:
    """Answer to a :class:`PromptRequest`.

    ``text`` is only meaningful for :attr:`PromptKind.TEXT` prompts.
    """

    request_id: int
    accepted: bool
    text: str = ""

    @classmethod
    def declined(cls, request_id: int) -> PromptResponse:
        return cls(request_id=request_id, accepted=False)


@dataclass
class _PendingPrompt:
    request: PromptRequest
    future: asyncio.Future[PromptResponse] = field(repr=False)


class PromptBroker:
    """Route prompts to a single listener and await the answers."""

    def __init__(self, listener: Callable[[PromptRequest], None] | None = None) -> None:
        self._listener = listener
        self._pending: dict[int, _PendingPrompt] = {}

    def set_listener(self, listener: Callable[[PromptRequest], None] | None) -> None:
        self._listener = listener

    def pending(self) -> list[PromptRequest]:
        """Requests still waiting for an answer, oldest first."""
        return [p.request for p in self._pending.values()]

    async def ask(self, kind: PromptKind | str, message: str, timeout: float | None = None) -> PromptResponse:
        """Publish a prompt and wait for its response.

        Timeout and :meth:`cancel` both resolve as declined; with no listener
        attached the prompt is declined immediately.
        """
        request = PromptRequest(request_id=next(_request_ids), kind=PromptKind(kind), message=message)
        listener = self._listener
        if listener is None:
            _logger.debug("No prompt listener; declining request_id=%d", request.request_id)
            return PromptResponse.declined(request.request_id)

        future: asyncio.Future[PromptResponse] = asyncio.get_running_loop().create_future()
        self._pending[request.request_id] = _PendingPrompt(request=request, future=future)
        try:
            listener(request)
            return await asyncio.wait_for(future, timeout)
        except TimeoutError:
            _logger.info("Prompt timed out request_id=%d kind=%s", request.request_id, request.kind)
            return PromptResponse.declined(request.request_id)
        finally:
            self._pending.pop(request.request_id, None)

    def respond(self, response: PromptResponse) -> bool:
        """Resolve a pending prompt; ``False`` if it is unknown or already answered."""
        pending = self._pending.get(response.request_id)
        if pending is None or pending.future.done():
            _logger.debug("Ignoring response for unknown request_id=%d", response.request_id)
            return False
        pending.future.set_result(response)
        return True

    def cancel(self, request_id: int) -> bool:
        """Withdraw a pending prompt; the asker sees it declined."""
        return self.respond(PromptResponse.declined(request_id))

    def decline_all(self) -> None:
        for pending in list(self._pending.values()):
            if not pending.future.done():
                pending.future.set_result(PromptResponse.declined(pending.request.request_id))
