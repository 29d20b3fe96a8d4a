"""
pantheon-orchestrator messenger

File: src/pantheon_orchestrator/coordination_plane/messenger.py

Purpose
- Asynchronous, priority-ordered message bus between workers, with a handoff
  protocol that moves conversational ownership along with the session context.

Delivery ordering
- Each recipient has its own inbox ordered by priority (high, normal, low) and
  FIFO within a priority. Handoff introductions jump ahead of everything else so
  a new participant is introduced before any further message reaches it.
- The primary orchestrator's messages default to high priority.
- A multicast is one history entry delivered once to each listed recipient,
  never to its sender.

Functional requirements
- ``requires_response`` suspends the sender until a correlated reply arrives or
  the timeout elapses; a timeout raises ``DeliveryTimeout`` and is never dropped.
- Every routed message is kept in an audit history (``get_history``).
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Final

import structlog

from pantheon_orchestrator.domain import ids
from pantheon_orchestrator.domain.errors import DeliveryTimeout
from pantheon_orchestrator.domain.models import (
    BROADCAST,
    JSONValue,
    Message,
    MessageKind,
    Priority,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pantheon_orchestrator.coordination_plane.session import SessionContext

INTRODUCTION_RANK: Final[int] = 0
_FAN_OUT: Final[frozenset[MessageKind]] = frozenset({MessageKind.BROADCAST, MessageKind.MULTICAST})


@dataclass(frozen=True, slots=True)
class MessengerSettings:
    response_timeout_seconds: float = 30.0
    primary_orchestrator: str = "zeus"

    def __post_init__(self) -> None:
        timeout = self.response_timeout_seconds
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("response_timeout_seconds must be > 0")
        if not isinstance(self.primary_orchestrator, str) or not self.primary_orchestrator.strip():
            raise ValueError("primary_orchestrator cannot be empty")


class _Inbox:
    __slots__ = ("heap", "arrived")

    def __init__(self) -> None:
        self.heap: list[tuple[int, int, Message]] = []
        self.arrived = asyncio.Event()

    def push(self, rank: int, message: Message) -> None:
        heapq.heappush(self.heap, (rank, message.sequence, message))
        self.arrived.set()

    def pop(self) -> Message | None:
        if not self.heap:
            self.arrived.clear()
            return None
        _, _, message = heapq.heappop(self.heap)
        if not self.heap:
            self.arrived.clear()
        return message


class Messenger:
    """In-process message bus; one instance per orchestration run."""

    def __init__(
        self,
        settings: MessengerSettings | None = None,
        *,
        logger: Any | None = None,
    ) -> None:
        self._settings = settings if settings is not None else MessengerSettings()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._inboxes: dict[str, _Inbox] = {}
        self._history: list[Message] = []
        self._waiters: dict[str, asyncio.Future[Message]] = {}
        self._sequence = itertools.count(1)

    @property
    def settings(self) -> MessengerSettings:
        return self._settings

    def register(self, worker_id: str) -> None:
        """Create an inbox so the worker receives broadcasts."""
        self._inbox(worker_id)

    def known_workers(self) -> tuple[str, ...]:
        return tuple(sorted(self._inboxes))

    def default_priority(self, sender: str) -> Priority:
        if sender == self._settings.primary_orchestrator:
            return Priority.HIGH
        return Priority.NORMAL

    async def send(
        self,
        sender: str,
        recipient: str,
        content: JSONValue,
        *,
        priority: Priority | None = None,
        requires_response: bool = False,
        timeout: float | None = None,
    ) -> Message:
        """Deliver ``content``; returns the ack, or the reply when one is required."""
        if recipient == BROADCAST:
            raise ValueError("use broadcast() to address every worker")
        self._inbox(sender)
        correlation_id = ids.generate_correlation_id() if requires_response else None
        message = self._envelope(
            sender,
            recipient,
            content,
            priority=priority,
            requires_response=requires_response,
            correlation_id=correlation_id,
            kind=MessageKind.DIRECT,
        )
        if correlation_id is None:
            self._deliver(recipient, message)
            return message

        wait_seconds = timeout if timeout is not None else self._settings.response_timeout_seconds
        future: asyncio.Future[Message] = asyncio.get_running_loop().create_future()
        self._waiters[correlation_id] = future
        self._deliver(recipient, message)
        try:
            return await asyncio.wait_for(future, timeout=wait_seconds)
        except TimeoutError:
            self._logger.info(
                "messenger_delivery_timeout",
                sender=sender,
                recipient=recipient,
                correlation_id=correlation_id,
                timeout_seconds=wait_seconds,
            )
            raise DeliveryTimeout(correlation_id, wait_seconds) from None
        finally:
            self._waiters.pop(correlation_id, None)

    def reply(
        self,
        message: Message,
        content: JSONValue,
        *,
        sender: str | None = None,
        priority: Priority | None = None,
    ) -> Message:
        """Answer ``message``; resolves the original sender's wait if one is pending.

        A direct message is answered by its recipient. Broadcasts and multicasts
        have several recipients, so the replying worker must name itself.
        """
        if sender is None:
            if message.kind in _FAN_OUT:
                raise ValueError(f"reply to a {message.kind.value} needs an explicit sender")
            sender = message.recipient
        elif not message.addresses(sender):
            raise ValueError(f"{sender} was not addressed by message {message.message_id}")
        response = self._envelope(
            sender,
            message.sender,
            content,
            priority=priority,
            requires_response=False,
            correlation_id=message.correlation_id,
            kind=MessageKind.REPLY,
        )
        waiter = (
            self._waiters.get(message.correlation_id)
            if message.correlation_id is not None
            else None
        )
        if waiter is not None and not waiter.done():
            self._history.append(response)
            waiter.set_result(response)
            self._log_routed(response, recipients=1)
        else:
            self._deliver(message.sender, response)
        return response

    def broadcast(
        self,
        sender: str,
        content: JSONValue,
        *,
        priority: Priority | None = None,
    ) -> Message:
        """Queue one message into every known inbox except the sender's."""
        self._inbox(sender)
        message = self._envelope(
            sender,
            BROADCAST,
            content,
            priority=priority,
            requires_response=False,
            correlation_id=None,
            kind=MessageKind.BROADCAST,
        )
        self._history.append(message)
        recipients = [worker for worker in sorted(self._inboxes) if worker != sender]
        for worker in recipients:
            self._inboxes[worker].push(message.priority.rank, message)
        self._log_routed(message, recipients=len(recipients))
        return message

    def multicast(
        self,
        sender: str,
        recipients: Iterable[str],
        content: JSONValue,
        *,
        priority: Priority | None = None,
    ) -> Message:
        """Queue one message for each listed worker; duplicates and the sender are dropped."""
        audience = tuple(dict.fromkeys(worker for worker in recipients if worker != sender))
        if BROADCAST in audience:
            raise ValueError("use broadcast() to address every worker")
        if not audience:
            raise ValueError("multicast needs at least one recipient other than the sender")
        self._inbox(sender)
        message = self._envelope(
            sender,
            ",".join(audience),
            content,
            priority=priority,
            requires_response=False,
            correlation_id=None,
            kind=MessageKind.MULTICAST,
            audience=audience,
        )
        self._history.append(message)
        for worker in audience:
            self._inbox(worker).push(message.priority.rank, message)
        self._log_routed(message, recipients=len(audience))
        return message

    async def handoff(
        self,
        sender: str,
        recipient: str,
        session: SessionContext,
        *,
        reason: str,
    ) -> Message:
        """Transfer ownership to ``recipient`` and introduce it with a summary."""
        session.add_participant(recipient)
        event = session.record_handoff(sender, recipient, reason)
        context = session.context
        content: dict[str, JSONValue] = {
            "type": "handoff",
            "session_id": session.session_id,
            "handoff_seq": event.seq,
            "from": sender,
            "to": recipient,
            "reason": reason,
            "farewell": f"{sender}: handing over to {recipient} ({reason}).",
            "greeting": f"{recipient}: picking up from {sender} with the full session context.",
            "summary": summarize_outputs(context),
        }
        message = self._envelope(
            sender,
            recipient,
            content,
            priority=Priority.HIGH,
            requires_response=False,
            correlation_id=None,
            kind=MessageKind.INTRODUCTION,
        )
        self._deliver(recipient, message, rank=INTRODUCTION_RANK)
        self._logger.info(
            "messenger_handoff",
            session_id=session.session_id,
            sender=sender,
            recipient=recipient,
            reason=reason,
            handoff_seq=event.seq,
        )
        return message

    def receive(self, worker_id: str) -> Message | None:
        """Pop the next message without waiting."""
        return self._inbox(worker_id).pop()

    async def next_message(self, worker_id: str, timeout: float | None = None) -> Message | None:
        """Wait for the next message; ``None`` when ``timeout`` elapses first."""
        inbox = self._inbox(worker_id)
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while True:
            message = inbox.pop()
            if message is not None:
                return message
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return None
            try:
                await asyncio.wait_for(inbox.arrived.wait(), timeout=remaining)
            except TimeoutError:
                return None

    def drain(self, worker_id: str) -> list[Message]:
        drained: list[Message] = []
        inbox = self._inbox(worker_id)
        while (message := inbox.pop()) is not None:
            drained.append(message)
        return drained

    def pending(self, worker_id: str) -> int:
        inbox = self._inboxes.get(worker_id)
        return len(inbox.heap) if inbox is not None else 0

    def queue_status(self) -> dict[str, dict[str, int]]:
        status: dict[str, dict[str, int]] = {}
        for worker in sorted(self._inboxes):
            counts = {"pending": 0}
            counts.update({priority.value: 0 for priority in Priority})
            for _, _, message in self._inboxes[worker].heap:
                counts["pending"] += 1
                counts[message.priority.value] += 1
            status[worker] = counts
        return status

    def get_history(
        self,
        *,
        sender: str | None = None,
        recipient: str | None = None,
        since: datetime | int | None = None,
        correlation_id: str | None = None,
    ) -> tuple[Message, ...]:
        """Routed messages in send order; ``since`` is a datetime or a sequence number."""

        def matches(message: Message) -> bool:
            if sender is not None and message.sender != sender:
                return False
            if recipient is not None and not message.addresses(recipient):
                return False
            if correlation_id is not None and message.correlation_id != correlation_id:
                return False
            if isinstance(since, datetime) and message.sent_at < since:
                return False
            if isinstance(since, int) and message.sequence <= since:
                return False
            return True

        return tuple(message for message in self._history if matches(message))

    def _inbox(self, worker_id: str) -> _Inbox:
        inbox = self._inboxes.get(worker_id)
        if inbox is None:
            inbox = _Inbox()
            self._inboxes[worker_id] = inbox
        return inbox

    def _envelope(
        self,
        sender: str,
        recipient: str,
        content: JSONValue,
        *,
        priority: Priority | None,
        requires_response: bool,
        correlation_id: str | None,
        kind: MessageKind,
        audience: tuple[str, ...] = (),
    ) -> Message:
        return Message(
            message_id=ids.generate_message_id(),
            sender=sender,
            recipient=recipient,
            content=content,
            priority=priority if priority is not None else self.default_priority(sender),
            requires_response=requires_response,
            correlation_id=correlation_id,
            kind=kind,
            sequence=next(self._sequence),
            audience=audience,
        )

    def _deliver(self, recipient: str, message: Message, *, rank: int | None = None) -> None:
        self._history.append(message)
        self._inbox(recipient).push(rank if rank is not None else message.priority.rank, message)
        self._log_routed(message, recipients=1)

    def _log_routed(self, message: Message, *, recipients: int) -> None:
        self._logger.info(
            "messenger_message_routed",
            message_id=message.message_id,
            sender=message.sender,
            recipient=message.recipient,
            kind=message.kind.value,
            priority=message.priority.value,
            sequence=message.sequence,
            correlation_id=message.correlation_id,
            recipients=recipients,
        )


def summarize_outputs(context: dict[str, JSONValue]) -> dict[str, JSONValue]:
    """Compact view of prior phase outputs for an incoming participant."""
    outputs = context.get("outputs")
    phases: dict[str, JSONValue] = {}
    if isinstance(outputs, dict):
        for phase in sorted(outputs):
            produced = outputs[phase]
            phases[phase] = sorted(produced) if isinstance(produced, dict) else []
    decisions = context.get("decisions")
    return {
        "phases": phases,
        "decision_count": len(decisions) if isinstance(decisions, list) else 0,
        "current_phase": context.get("current_phase"),
        "context_keys": sorted(context),
    }


__all__ = [
    "Messenger",
    "MessengerSettings",
    "summarize_outputs",
]
