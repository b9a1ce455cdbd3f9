"""
Session Manager for Pairline.

Owns the single device-linked WhatsApp session of the process.

State machine:
    UNINITIALIZED -> PAIRING -> AUTHENTICATED -> READY
    PAIRING -> READY                     (ready may arrive without authenticated)
    *  -> AUTH_FAILED | DISCONNECTED    (teardown, purge, re-init after a delay)
    *  -> UNINITIALIZED                  (manual reset, re-init after a short delay)

Transport events and manual resets are queued and applied one at a time
by a single consumer task, so session state has exactly one writer.
Every transport instance gets a generation number; events from a
generation that has since been torn down are dropped.

Retry policy:
    Credential and link failures always lead to purge-and-retry with a
    fixed delay. Retries are unbounded unless max_reinit_attempts is set,
    in which case the manager stops after that many consecutive automatic
    re-inits that never reached READY and waits for a manual reset.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from pairline.transports.protocol import TransportEvent, TransportEventKind

from .broadcaster import EventBroadcaster
from .events import LifecycleEvent, SessionState, SessionStatus

if TYPE_CHECKING:
    from pairline.transports.protocol import (
        EventEmitter,
        TransportAdapter,
        TransportFactory,
    )
    from .broadcaster import Observer

logger = logging.getLogger(__name__)

SCAN_PROMPT = "Please scan QR code"


class _ManualReset:
    """Queue marker for a caller-requested reset."""

    def __repr__(self) -> str:
        return "ManualReset"


_MANUAL_RESET = _ManualReset()


class SessionManager:
    """
    Lifecycle owner of the process-wide WhatsApp session.

    Example:
        manager = SessionManager(
            transport_factory=lambda: BridgeTransport(url, "inventory-wa"),
            broadcaster=EventBroadcaster(),
            session_dir=".wwebjs_auth/session-inventory-wa",
        )
        await manager.start()
        ...
        if manager.current_status().ready:
            await manager.transport.send_text(jid, "hello")
        ...
        await manager.stop()
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        broadcaster: EventBroadcaster | None = None,
        *,
        session_dir: str | Path | None = None,
        reinit_delay: float = 2.0,
        reset_delay: float = 1.0,
        max_reinit_attempts: int | None = None,
    ):
        """
        Initialize the session manager.

        Args:
            transport_factory: Builds a fresh, unstarted transport
            broadcaster: Where lifecycle events are published
            session_dir: Credential storage wiped on failure and reset
            reinit_delay: Seconds before re-init after a failure
            reset_delay: Seconds before re-init after a manual reset
            max_reinit_attempts: Consecutive automatic re-inits allowed
                without reaching READY (None for unbounded)
        """
        self._transport_factory = transport_factory
        self._broadcaster = broadcaster or EventBroadcaster()
        self._session_dir = Path(session_dir) if session_dir else None
        self._reinit_delay = reinit_delay
        self._reset_delay = reset_delay
        self._max_reinit_attempts = max_reinit_attempts

        # Session
        self._state = SessionState.UNINITIALIZED
        self._ready = False
        self._challenge: str | None = None
        self._identity: str | None = None
        self._transport: TransportAdapter | None = None
        self._generation = 0
        self._failed_attempts = 0

        self._events: asyncio.Queue[tuple[int, TransportEvent | _ManualReset]] = asyncio.Queue()
        self._lifecycle_lock = asyncio.Lock()
        self._consumer: asyncio.Task[None] | None = None
        self._reinit_task: asyncio.Task[None] | None = None

    # =========================================================================
    # Read side
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def broadcaster(self) -> EventBroadcaster:
        return self._broadcaster

    @property
    def transport(self) -> TransportAdapter | None:
        return self._transport

    @property
    def reinit_pending(self) -> bool:
        return self._reinit_task is not None and not self._reinit_task.done()

    @property
    def is_running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def current_status(self) -> SessionStatus:
        return SessionStatus(ready=self._ready, identity=self._identity, state=self._state)

    def pending_challenge(self) -> str | None:
        """Pairing code awaiting a scan, or None outside PAIRING."""
        if self._state == SessionState.PAIRING:
            return self._challenge
        return None

    # =========================================================================
    # Observers
    # =========================================================================

    def subscribe(self, observer: Observer) -> None:
        """Connect an observer, replaying the pending pairing code to it."""
        initial: list[LifecycleEvent] = []
        challenge = self.pending_challenge()
        if challenge:
            initial.append(LifecycleEvent(SessionState.PAIRING, SCAN_PROMPT, challenge=challenge))
            initial.append(LifecycleEvent(SessionState.PAIRING, SCAN_PROMPT))
        self._broadcaster.subscribe(observer, initial_events=initial)

    def unsubscribe(self, observer: Observer) -> None:
        self._broadcaster.unsubscribe(observer)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start consuming transport events and open the first session."""
        if self.is_running:
            return
        self._consumer = asyncio.create_task(self._consume(), name="session-events")
        await self.initialize()

    async def stop(self) -> None:
        """Cancel background work and release the transport."""
        await self._cancel_reinit()
        if self._consumer is not None:
            self._consumer.cancel()
            await asyncio.wait([self._consumer])
            self._consumer = None
        async with self._lifecycle_lock:
            self._ready = False
            await self._release_transport()
        logger.info("Session manager stopped")

    async def initialize(self) -> None:
        """
        Open a fresh transport session.

        Safe to call repeatedly: any previous transport is stopped first.
        A transport that fails to start is handled like a disconnect.
        """
        failure: str | None = None

        async with self._lifecycle_lock:
            await self._release_transport()

            self._generation += 1
            generation = self._generation
            self._state = SessionState.UNINITIALIZED
            self._ready = False
            self._challenge = None
            self._identity = None

            transport = self._transport_factory()
            self._transport = transport
            logger.info(f"Initializing WhatsApp session (generation {generation})")

            try:
                await transport.start(self._emitter_for(generation))
            except Exception as e:
                logger.error(f"WhatsApp session failed to start: {e}", exc_info=True)
                failure = getattr(e, "reason", None) or str(e)

        if failure is not None and self._generation == generation:
            await self._enter_degraded(SessionState.DISCONNECTED, "Disconnected", failure)

    def reset_session(self) -> None:
        """
        Request a manual reset.

        Returns immediately. The reset is applied by the event consumer:
        storage purged, pending re-init cancelled, re-init scheduled.
        """
        logger.info("Manual session reset requested")
        self._events.put_nowait((self._generation, _MANUAL_RESET))

    async def drain(self) -> None:
        """Wait until every queued event has been applied."""
        await self._events.join()

    # =========================================================================
    # Event consumer
    # =========================================================================

    def _emitter_for(self, generation: int) -> EventEmitter:
        def emit(event: TransportEvent) -> None:
            self._events.put_nowait((generation, event))

        return emit

    async def _consume(self) -> None:
        while True:
            generation, item = await self._events.get()
            try:
                if isinstance(item, _ManualReset):
                    await self._handle_reset()
                elif generation != self._generation:
                    logger.debug(f"Dropping {item.kind.value} from stale generation {generation}")
                else:
                    await self._apply(item)
            except Exception as e:
                logger.error(f"Error applying session event {item!r}: {e}", exc_info=True)
            finally:
                self._events.task_done()

    async def _apply(self, event: TransportEvent) -> None:
        kind = event.kind

        if kind == TransportEventKind.QR:
            self._ready = False
            self._challenge = event.challenge
            self._state = SessionState.PAIRING
            logger.info("WhatsApp pairing code received, waiting for scan")
            self._publish(LifecycleEvent(SessionState.PAIRING, SCAN_PROMPT, challenge=event.challenge))

        elif kind == TransportEventKind.AUTHENTICATED:
            self._challenge = None
            self._state = SessionState.AUTHENTICATED
            logger.info("WhatsApp client authenticated")
            self._publish(LifecycleEvent(SessionState.AUTHENTICATED, "Authenticated"))

        elif kind == TransportEventKind.READY:
            self._challenge = None
            self._identity = event.identity
            self._state = SessionState.READY
            self._ready = True
            self._failed_attempts = 0
            logger.info(f"WhatsApp client is ready (user={event.identity})")
            self._publish(LifecycleEvent(SessionState.READY, "Connected", identity=event.identity))

        elif kind == TransportEventKind.AUTH_FAILURE:
            logger.error(f"WhatsApp auth failure: {event.detail}")
            await self._enter_degraded(SessionState.AUTH_FAILED, "Auth Failure", event.detail)

        elif kind == TransportEventKind.DISCONNECTED:
            logger.warning(f"WhatsApp client disconnected: {event.detail}")
            await self._enter_degraded(SessionState.DISCONNECTED, "Disconnected", event.detail)

    async def _enter_degraded(
        self,
        state: SessionState,
        status: str,
        detail: str | None,
    ) -> None:
        self._ready = False
        self._challenge = None
        self._identity = None
        self._state = state
        self._publish(LifecycleEvent(state, status, detail=detail))

        async with self._lifecycle_lock:
            await self._release_transport()
            await self._purge_storage()

        self._failed_attempts += 1
        limit = self._max_reinit_attempts
        if limit is not None and self._failed_attempts > limit:
            logger.error(
                f"Giving up after {limit} re-init attempts without reaching ready; "
                f"waiting for manual reset"
            )
            return
        self._schedule_reinit(self._reinit_delay)

    async def _handle_reset(self) -> None:
        await self._cancel_reinit()

        self._ready = False
        self._challenge = None
        self._identity = None
        async with self._lifecycle_lock:
            await self._release_transport()
            await self._purge_storage()

        self._state = SessionState.UNINITIALIZED
        self._failed_attempts = 0
        self._publish(LifecycleEvent(SessionState.UNINITIALIZED, "Reset"))
        self._schedule_reinit(self._reset_delay)

    def _publish(self, event: LifecycleEvent) -> None:
        self._broadcaster.publish(event)

    # =========================================================================
    # Teardown and scheduling
    # =========================================================================

    async def _release_transport(self) -> None:
        """Stop the current transport. Caller holds the lifecycle lock."""
        transport = self._transport
        if transport is None:
            return
        self._transport = None
        self._generation += 1
        try:
            await transport.stop()
        except Exception as e:
            logger.warning(f"Error stopping WhatsApp transport: {e}", exc_info=True)

    async def _purge_storage(self) -> None:
        if self._session_dir is None:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._remove_session_dir)

    def _remove_session_dir(self) -> None:
        path = self._session_dir
        if path is None or not path.exists():
            return
        try:
            shutil.rmtree(path)
            logger.info("Old WhatsApp session cleared. Will prompt fresh QR.")
        except OSError as e:
            logger.error(f"Failed to clear WhatsApp session at {path}: {e}")

    def _schedule_reinit(self, delay: float) -> None:
        current = asyncio.current_task()
        pending = self._reinit_task
        if pending is not None and not pending.done() and pending is not current:
            pending.cancel()
        logger.info(f"Re-initializing WhatsApp session in {delay:.1f}s")
        self._reinit_task = asyncio.create_task(
            self._reinit_after(delay),
            name="session-reinit",
        )

    async def _reinit_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.initialize()

    async def _cancel_reinit(self) -> None:
        current = asyncio.current_task()
        while True:
            task = self._reinit_task
            if task is None or task.done() or task is current:
                self._reinit_task = None
                return
            task.cancel()
            await asyncio.wait([task])
            # The cancelled task may have scheduled a successor before it unwound
            if self._reinit_task is task:
                self._reinit_task = None
