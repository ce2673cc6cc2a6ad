from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import BaseModel

logger = logging.getLogger("arena.events")

Handler = Callable[[Any], Awaitable[None]]


class EventPublisher(Protocol):
    async def publish(self, topic: str, event: BaseModel) -> None: ...


class LoggingEventPublisher:
    """Publisher for deployments where outbound events are only logged."""

    async def publish(self, topic: str, event: BaseModel) -> None:
        logger.info(
            "event_published",
            extra={"topic": topic, "payload": event.model_dump(by_alias=True, mode="json")},
        )


@dataclass
class _Subscription:
    model: type[BaseModel]
    handlers: list[Handler] = field(default_factory=list)


class InProcessEventBus:
    """Typed topic bus with one queue and one consumer task per topic.

    Before ``start()`` (and after ``stop()``) events are dispatched inline,
    which keeps the bus usable from scripts and tests without a running
    consumer.
    """

    def __init__(self, *, queue_size: int = 1000, drain_timeout_s: float = 5.0) -> None:
        self.queue_size = queue_size
        self.drain_timeout_s = drain_timeout_s
        self._subscriptions: dict[str, _Subscription] = {}
        self._queues: dict[str, asyncio.Queue[BaseModel]] = {}
        self._consumers: dict[str, asyncio.Task[None]] = {}

    @property
    def running(self) -> bool:
        return bool(self._consumers)

    @property
    def topics(self) -> list[str]:
        return sorted(self._subscriptions)

    def subscribe(self, topic: str, model: type[BaseModel], handler: Handler) -> None:
        subscription = self._subscriptions.get(topic)
        if subscription is None:
            subscription = _Subscription(model=model)
            self._subscriptions[topic] = subscription
        elif subscription.model is not model:
            raise ValueError(f"Topic '{topic}' is already bound to {subscription.model.__name__}.")
        subscription.handlers.append(handler)

    def parse(self, topic: str, payload: Mapping[str, object]) -> BaseModel:
        subscription = self._subscriptions.get(topic)
        if subscription is None:
            raise LookupError(f"Unknown topic '{topic}'.")
        return subscription.model.model_validate(payload)

    async def deliver(self, topic: str, payload: Mapping[str, object]) -> BaseModel:
        event = self.parse(topic, payload)
        await self.publish(topic, event)
        return event

    async def publish(self, topic: str, event: BaseModel) -> None:
        logger.info(
            "event_published",
            extra={"topic": topic, "payload": event.model_dump(by_alias=True, mode="json")},
        )
        if topic not in self._subscriptions:
            return
        queue = self._queues.get(topic)
        if queue is not None and topic in self._consumers:
            await queue.put(event)
            return
        await self._dispatch(topic, event)

    async def start(self) -> None:
        for topic in self._subscriptions:
            if topic in self._consumers:
                continue
            queue: asyncio.Queue[BaseModel] = asyncio.Queue(maxsize=self.queue_size)
            self._queues[topic] = queue
            self._consumers[topic] = asyncio.create_task(
                self._consume(topic, queue),
                name=f"event-consumer:{topic}",
            )
        logger.info("event_bus_started", extra={"topics": self.topics})

    async def stop(self) -> None:
        queues = list(self._queues.values())
        try:
            await asyncio.wait_for(
                asyncio.gather(*(queue.join() for queue in queues)),
                timeout=self.drain_timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning("event_bus_drain_timeout", extra={"timeout_s": self.drain_timeout_s})

        consumers = list(self._consumers.values())
        self._consumers.clear()
        self._queues.clear()
        for task in consumers:
            task.cancel()
        await asyncio.gather(*consumers, return_exceptions=True)
        logger.info("event_bus_stopped")

    async def _consume(self, topic: str, queue: asyncio.Queue[BaseModel]) -> None:
        while True:
            event = await queue.get()
            try:
                await self._dispatch(topic, event)
            finally:
                queue.task_done()

    async def _dispatch(self, topic: str, event: BaseModel) -> None:
        for handler in self._subscriptions[topic].handlers:
            try:
                await handler(event)
            except Exception:
                # One failing handler must not stop the topic's consumer.
                logger.exception(
                    "event_handler_failed",
                    extra={"topic": topic, "handler": getattr(handler, "__qualname__", repr(handler))},
                )
