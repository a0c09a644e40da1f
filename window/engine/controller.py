"""Session controller: the single owner of timeline and agent status.

Orchestrates the connect sequence (REST status, history, realtime
channel), health probing, and the reconnect policy. Every event from
the transport or mock driver, and every probe or reconnect result, is
put on the session's EventBus and applied by one consumer task, so
effects on shared state happen one at a time in arrival order.

Lifecycle::

    controller = SessionController(SessionConfig.from_env())
    controller.add_listener(lambda c: render(c.timeline))
    if await controller.connect("127.0.0.1:8080", "secret"):
        await controller.send_message("hello")
    ...
    await controller.disconnect()
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from window.adapters.credential_store import CredentialStore, FileCredentialStore
from window.adapters.event_bus import (
    BusItem,
    EventBus,
    HistoryLoaded,
    ProbeCompleted,
    ReconnectCompleted,
    TransportClosed,
)
from window.adapters.events import (
    ConnectedEvent,
    MessageCompleteEvent,
    MessageStreamEvent,
    StatusUpdateEvent,
    TaskCompletedEvent,
    TaskCreatedEvent,
    TaskUpdatedEvent,
)
from window.adapters.mock_driver import MockDriver
from window.adapters.rest_client import RestClient
from window.adapters.transport import RealtimeTransport
from window.engine.config import SessionConfig
from window.engine.errors import TransportError
from window.engine.lifecycle import SessionState, is_active, validate_transition
from window.engine.timeline import Timeline
from window.engine.timers import DelayedCall, PeriodicTimer
from window.shared.models.agent import AgentState, AgentStatus
from window.shared.models.message import Message, generate_message_id

logger = logging.getLogger(__name__)

ChangeListener = Callable[["SessionController"], None]
RestFactory = Callable[[str, str], RestClient]
TransportFactory = Callable[[str, str, EventBus], RealtimeTransport]
MockFactory = Callable[[EventBus], MockDriver]


class SessionController:
    """Connection lifecycle and event application for one agent session.

    Collaborators are built through factories so tests can substitute
    fakes; they receive the session's EventBus, never the controller.
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        credential_store: CredentialStore | None = None,
        rest_factory: RestFactory | None = None,
        transport_factory: TransportFactory | None = None,
        mock_factory: MockFactory | None = None,
    ) -> None:
        self.config = config or SessionConfig()
        if credential_store is None:
            credential_store = FileCredentialStore(self.config.credentials_path)
        self.credentials: CredentialStore = credential_store
        self._rest_factory = rest_factory or self._default_rest
        self._transport_factory = transport_factory or self._default_transport
        self._mock_factory = mock_factory or self._default_mock

        self.state = SessionState.DISCONNECTED
        self.timeline = Timeline()
        self.agent_status: AgentStatus | None = None
        self.is_reachable = False
        self.connection_error: str | None = None
        self.server_host = ""
        self.api_key = ""
        self.use_mock = False
        self.reconnect_attempts = 0

        self._bus = EventBus(maxsize=self.config.event_queue_size)
        self._bus.close()
        self._consumer: asyncio.Task[None] | None = None
        self._rest: RestClient | None = None
        self._transport: RealtimeTransport | None = None
        self._mock: MockDriver | None = None
        self._health_timer: PeriodicTimer | None = None
        self._reconnect_call: DelayedCall | None = None
        # Bumped on every teardown; a connect() that sees a different
        # value after an await has been superseded.
        self._epoch = 0
        # Set while a teardown is running; later teardowns wait on it.
        self._teardown_done: asyncio.Event | None = None
        self._listeners: list[ChangeListener] = []

        self._handlers = {
            ConnectedEvent: self._on_connected,
            MessageStreamEvent: self._on_message_stream,
            MessageCompleteEvent: self._on_message_complete,
            TaskCreatedEvent: self._on_task_created,
            TaskUpdatedEvent: self._on_task_updated,
            TaskCompletedEvent: self._on_task_completed,
            StatusUpdateEvent: self._on_status_update,
            HistoryLoaded: self._on_history_loaded,
            TransportClosed: self._on_transport_closed,
            ProbeCompleted: self._on_probe_completed,
            ReconnectCompleted: self._on_reconnect_completed,
        }

    # ── Default collaborators ──

    def _default_rest(self, host: str, api_key: str) -> RestClient:
        return RestClient(host, api_key, timeout=self.config.request_timeout_seconds)

    def _default_transport(self, host: str, api_key: str, bus: EventBus) -> RealtimeTransport:
        return RealtimeTransport(host, api_key, bus)

    def _default_mock(self, bus: EventBus) -> MockDriver:
        return MockDriver(bus, self.config.mock)

    # ── Observable state ──

    @property
    def is_connected(self) -> bool:
        return self.state == SessionState.LIVE

    @property
    def is_connecting(self) -> bool:
        return self.state in (SessionState.CONNECTING, SessionState.BOOTSTRAPPING)

    @property
    def health_check_running(self) -> bool:
        return self._health_timer is not None and self._health_timer.running

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_call is not None and self._reconnect_call.running

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Call ``listener(controller)`` after every applied change.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Session listener failed")

    def _set_state(self, target: SessionState) -> None:
        validate_transition(self.state, target)
        if target != self.state:
            logger.info("Session %s -> %s", self.state.value, target.value)
        self.state = target

    # ── Connect / disconnect ──

    async def connect(self, host: str, api_key: str, use_mock: bool = False) -> bool:
        """Bootstrap a session and switch to the live event stream.

        Returns True once the session is live (mock mode: once the
        driver has been started). Returns False when the agent cannot
        be reached, with the reason in ``connection_error``. Raises
        InvalidTransitionError if a session is already active.
        """
        self._set_state(SessionState.CONNECTING)
        epoch = self._epoch
        self.timeline.clear()
        self.agent_status = None
        self.is_reachable = False
        self.server_host = host
        self.api_key = api_key
        self.use_mock = use_mock
        self.connection_error = None
        self.reconnect_attempts = 0
        self._bus = EventBus(maxsize=self.config.event_queue_size)
        self._consumer = asyncio.create_task(
            self._consume(self._bus), name="window-session-consumer",
        )
        self._notify()

        if use_mock:
            self._mock = self._mock_factory(self._bus)
            self._mock.connect()
            return True

        rest = self._rest_factory(host, api_key)
        self._rest = rest
        status = await rest.fetch_status()
        if epoch != self._epoch:
            return False
        if status is None:
            await self._teardown(error=f"Could not reach agent at {host}")
            return False

        self._set_state(SessionState.BOOTSTRAPPING)
        self.agent_status = status
        self.is_reachable = True
        self._notify()

        history = await rest.fetch_messages(limit=self.config.history_limit)
        if epoch != self._epoch:
            return False
        if history is None:
            logger.warning("History unavailable from %s, starting empty", host)
        else:
            self.timeline.load_history(history)

        transport = self._transport_factory(host, api_key, self._bus)
        self._transport = transport
        try:
            await transport.connect()
        except TransportError as exc:
            if epoch == self._epoch:
                await self._teardown(error=f"Could not open event stream at {host}: {exc.reason}")
            return False
        if epoch != self._epoch:
            await transport.close()
            return False

        self._set_state(SessionState.LIVE)
        self._start_health_check()
        self.credentials.save(host, api_key)
        self._notify()
        return True

    async def attempt_auto_connect(self) -> bool:
        """Connect with stored credentials, if there are any."""
        host = self.credentials.load_host()
        api_key = self.credentials.load_api_key()
        if not host or not api_key:
            logger.debug("No stored credentials, skipping auto-connect")
            return False
        return await self.connect(host, api_key)

    async def disconnect(self) -> None:
        """Tear the session down. Stored credentials are kept."""
        if not is_active(self.state) and self._teardown_done is None:
            # Nothing to release; drop any view kept after a lost connection
            self.connection_error = None
            self.agent_status = None
            self.timeline.clear()
            self._notify()
            return
        await self._teardown()

    async def forget_agent(self) -> None:
        """Disconnect and erase the stored credentials."""
        await self.disconnect()
        self.credentials.clear()
        self.server_host = ""
        self.api_key = ""
        self._notify()

    async def _teardown(self, error: str | None = None, keep_view: bool = False) -> None:
        """Release every session resource and land in DISCONNECTED.

        Timers are cancelled before anything else so that no probe or
        reconnect fires during teardown. A teardown that starts while
        another is running waits for it to finish first.
        """
        pending = self._teardown_done
        if pending is not None:
            await pending.wait()
        done = asyncio.Event()
        self._teardown_done = done
        try:
            await self._release(error, keep_view)
        finally:
            if self._teardown_done is done:
                self._teardown_done = None
            done.set()

    async def _release(self, error: str | None, keep_view: bool) -> None:
        self._epoch += 1
        health, self._health_timer = self._health_timer, None
        reconnect, self._reconnect_call = self._reconnect_call, None
        if health is not None:
            await health.cancel()
        if reconnect is not None:
            await reconnect.cancel()

        mock, self._mock = self._mock, None
        transport, self._transport = self._transport, None
        rest, self._rest = self._rest, None
        if mock is not None:
            await mock.disconnect()
        if transport is not None:
            await transport.close()
        if rest is not None:
            await rest.close()

        self._bus.close()
        consumer, self._consumer = self._consumer, None
        if consumer is not None and consumer is not asyncio.current_task():
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass

        self._set_state(SessionState.DISCONNECTED)
        self.is_reachable = False
        self.connection_error = error
        if not keep_view:
            self.agent_status = None
            self.timeline.clear()
        if error:
            logger.warning("Session ended: %s", error)
        self._notify()

    # ── Sending ──

    async def send_message(self, content: str) -> Message:
        """Insert the user's message optimistically, then send it."""
        message = self.timeline.add_user_message(generate_message_id(), content)
        self._notify()
        if self._mock is not None:
            self._mock.send(message.id, content)
        elif self._transport is not None:
            await self._transport.send(message.id, content)
        else:
            logger.warning("Not connected; %s kept locally only", message.id)
        return message

    # ── Health probe and reconnect ──

    def _start_health_check(self) -> None:
        self._health_timer = PeriodicTimer(
            self.config.health_check_interval_seconds,
            self._probe,
            name="window-health-check",
        )
        self._health_timer.start()

    async def _probe(self) -> None:
        rest, bus = self._rest, self._bus
        if rest is None:
            return
        status = await rest.fetch_status()
        await bus.put(ProbeCompleted(reachable=status is not None))

    async def _attempt_reconnect(self) -> None:
        transport, bus = self._transport, self._bus
        if self.state != SessionState.RECONNECTING or transport is None:
            return
        # A successful probe does not revive the event stream, so the
        # attempt is skipped only when the channel is already back up.
        if self.is_reachable and transport.connected:
            return
        self.reconnect_attempts += 1
        logger.info("Reconnecting to %s (attempt %d)", self.server_host, self.reconnect_attempts)
        try:
            await transport.connect()
        except TransportError as exc:
            await bus.put(ReconnectCompleted(success=False, error=exc.reason))
            return
        await bus.put(ReconnectCompleted(success=True))

    # ── Event application (consumer task only) ──

    async def wait_idle(self) -> None:
        """Wait until every event queued so far has been applied."""
        await self._bus.join()

    async def _consume(self, bus: EventBus) -> None:
        async for item in bus.consume():
            await self._apply(item)

    async def _apply(self, item: BusItem) -> None:
        if self.state == SessionState.DISCONNECTED:
            logger.debug("Discarding %s after disconnect", type(item).__name__)
            return
        handler = self._handlers.get(type(item))
        if handler is None:
            logger.warning("No handler for %s", type(item).__name__)
            return
        try:
            await handler(item)
        except Exception:
            # Never let one bad event stop the consumer
            logger.exception("Handling %s failed", type(item).__name__)
            return
        self._notify()

    async def _on_connected(self, event: ConnectedEvent) -> None:
        previous = self.agent_status
        self.agent_status = AgentStatus(
            agent=event.agent,
            status=AgentState.parse(event.status),
            context_remaining=event.context_remaining,
            tokens_used=event.tokens_used or 0,
            version=previous.version if previous and previous.agent == event.agent else None,
        )
        self.is_reachable = True
        if self.state == SessionState.CONNECTING and self.use_mock:
            self._set_state(SessionState.LIVE)

    async def _on_message_stream(self, event: MessageStreamEvent) -> None:
        self.timeline.apply_stream_delta(event.reply_to, event.delta)

    async def _on_message_complete(self, event: MessageCompleteEvent) -> None:
        self.timeline.apply_message_complete(
            event.reply_to, event.id, event.content, event.sent_at,
        )

    async def _on_task_created(self, event: TaskCreatedEvent) -> None:
        self.timeline.apply_task_created(
            event.task_id,
            event.title,
            event.progress,
            event.steps,
            should_display=event.should_display,
        )

    async def _on_task_updated(self, event: TaskUpdatedEvent) -> None:
        self.timeline.apply_task_updated(event.task_id, event.progress, event.steps)

    async def _on_task_completed(self, event: TaskCompletedEvent) -> None:
        self.timeline.apply_task_completed(event.task_id, event.progress, event.result)

    async def _on_status_update(self, event: StatusUpdateEvent) -> None:
        status = self.agent_status
        if status is None:
            logger.debug("status.update before connected, ignoring")
            return
        status.status = AgentState.parse(event.status)
        status.context_remaining = event.context_remaining
        if event.tokens_used and event.tokens_used > 0:
            status.tokens_used = event.tokens_used

    async def _on_history_loaded(self, signal: HistoryLoaded) -> None:
        self.timeline.load_history(signal.messages)

    async def _on_probe_completed(self, signal: ProbeCompleted) -> None:
        if signal.reachable != self.is_reachable:
            logger.info(
                "Agent at %s is %s", self.server_host,
                "reachable" if signal.reachable else "unreachable",
            )
        self.is_reachable = signal.reachable

    async def _on_transport_closed(self, signal: TransportClosed) -> None:
        self.is_reachable = False
        if self.state != SessionState.LIVE:
            logger.debug("Transport closed while %s, no reconnect scheduled", self.state.value)
            return
        self._set_state(SessionState.RECONNECTING)
        self._reconnect_call = DelayedCall(
            self.config.reconnect_delay_seconds,
            self._attempt_reconnect,
            name="window-reconnect",
        )
        self._reconnect_call.start()

    async def _on_reconnect_completed(self, signal: ReconnectCompleted) -> None:
        if self.state != SessionState.RECONNECTING:
            return
        self._reconnect_call = None
        if signal.success:
            self.is_reachable = True
            self._set_state(SessionState.LIVE)
            return
        await self._teardown(
            error=f"Lost connection to agent at {self.server_host}: {signal.error}",
            keep_view=True,
        )
