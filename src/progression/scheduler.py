"""Timer-driven status progression.

Each active entity gets one SimPy process that sleeps through the configured
delay for its current status and then asks the state machine for the next
status, conditioned on the status it slept in. A user action that changes the
status first simply makes that conditional request fail, so preemption never
needs the chain to be interrupted in time; ``deregister`` interrupts it anyway
to release the lease and stop the timer early.
"""

import logging
import threading
from collections.abc import Generator
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import simpy
from sqlalchemy.orm import Session, sessionmaker

from app_logging import log_entity_context
from core.clock import Clock, SystemClock
from core.exceptions import ConfigurationError, PersistenceError
from core.outcome import Outcome
from core.retry import RetryConfig
from db.repositories import LeaseRepository
from db.transaction import transaction
from lifecycle.types import (
    SYSTEM_ACTOR,
    EntityKind,
    StatusType,
    next_progression_status,
    parse_status,
)
from metrics import lifecycle_progression_chains_active
from settings import ProgressionSettings

if TYPE_CHECKING:
    from lifecycle import LifecycleStateMachine

logger = logging.getLogger(__name__)


@dataclass
class ProgressionChain:
    kind: EntityKind
    entity_id: str
    status: StatusType
    process: simpy.Process


def entity_key(kind: EntityKind, entity_id: str) -> str:
    return f"{kind.value}:{entity_id}"


class ProgressionScheduler:
    """Registry of per-entity progression chains.

    The SimPy environment is shared with the runner thread, so every access
    goes through ``lock``. A lease row per entity keeps two service instances
    from running the same chain.
    """

    def __init__(
        self,
        env: simpy.Environment,
        state_machine: "LifecycleStateMachine",
        session_factory: sessionmaker[Session],
        settings: ProgressionSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.env = env
        self.state_machine = state_machine
        self._session_factory = session_factory
        self._settings = settings or ProgressionSettings()
        self._clock = clock or SystemClock()
        self._instance_id = self._settings.instance_id
        self._lease_ttl = timedelta(seconds=self._settings.lease_ttl_seconds)
        self._delays = self._load_delays(self._settings)
        self._retry = RetryConfig(
            max_attempts=self._settings.retry_max_attempts,
            base_delay=self._settings.retry_base_delay_seconds,
            max_delay=self._settings.retry_max_delay_seconds,
        )
        self._chains: dict[str, ProgressionChain] = {}
        self.lock = threading.RLock()

    @staticmethod
    def _load_delays(settings: ProgressionSettings) -> dict[EntityKind, dict[Any, float]]:
        try:
            return {
                EntityKind.ORDER: {
                    parse_status(EntityKind.ORDER, status): delay
                    for status, delay in settings.order_delays.items()
                },
                EntityKind.TRIP: {
                    parse_status(EntityKind.TRIP, status): delay
                    for status, delay in settings.trip_delays.items()
                },
            }
        except ValueError as e:
            raise ConfigurationError(f"Unknown status in progression delays: {e}") from e

    @property
    def instance_id(self) -> str:
        return self._instance_id

    @property
    def active_count(self) -> int:
        with self.lock:
            return len(self._chains)

    def is_registered(self, kind: EntityKind, entity_id: str) -> bool:
        with self.lock:
            return entity_key(kind, entity_id) in self._chains

    def next_hop(self, kind: EntityKind, status: StatusType) -> tuple[StatusType, float] | None:
        """Next automatic status and the delay before it, or None at the end of the path."""
        next_status = next_progression_status(kind, status)
        delay = self._delays[kind].get(status)
        if next_status is None or delay is None:
            return None
        return next_status, delay

    def register(self, kind: EntityKind, entity_id: str, status: StatusType) -> bool:
        """Start a chain from ``status``; a no-op if one is already running."""
        if not self._settings.enabled or self.next_hop(kind, status) is None:
            return False

        key = entity_key(kind, entity_id)
        with self.lock:
            if key in self._chains:
                return False
            if not self._acquire_lease(key):
                logger.debug(f"Chain for {key} is owned by another instance")
                return False
            process = self.env.process(self._chain(kind, entity_id, status))
            self._chains[key] = ProgressionChain(kind, entity_id, status, process)
            lifecycle_progression_chains_active.set(len(self._chains))

        logger.debug(f"Progression registered for {key} at {status.value}")
        return True

    def deregister(self, kind: EntityKind, entity_id: str) -> bool:
        """Cancel the pending hop; idempotent and safe from inside the chain itself."""
        key = entity_key(kind, entity_id)
        with self.lock:
            chain = self._chains.pop(key, None)
            lifecycle_progression_chains_active.set(len(self._chains))
            if chain is None:
                return False
            process = chain.process
            # A chain deregistering itself from inside its own hop just ends
            # after the hop; SimPy forbids self-interrupts.
            if process.is_alive and self.env.active_process is not process:
                process.interrupt("deregistered")

        self._release_lease(key)
        logger.debug(f"Progression deregistered for {key}")
        return True

    def reschedule(self, kind: EntityKind, entity_id: str, status: StatusType) -> bool:
        """Restart the chain from a status reached outside the chain."""
        with self.lock:
            self.deregister(kind, entity_id)
            return self.register(kind, entity_id, status)

    def recover(self) -> int:
        """Re-register chains for every entity still in an active status."""
        registered = 0
        for kind in (EntityKind.ORDER, EntityKind.TRIP):
            for entity in self.state_machine.list_active(kind):
                if self.register(kind, self._entity_id(kind, entity), entity.status):
                    registered += 1
        logger.info(f"Recovered {registered} progression chains")
        return registered

    @staticmethod
    def _entity_id(kind: EntityKind, entity: Any) -> str:
        return entity.trip_id if kind == EntityKind.TRIP else entity.order_id

    def _chain(
        self, kind: EntityKind, entity_id: str, status: StatusType
    ) -> Generator[simpy.Event, Any, None]:
        key = entity_key(kind, entity_id)
        process = self.env.active_process
        try:
            while True:
                hop = self.next_hop(kind, status)
                if hop is None:
                    break
                next_status, delay = hop
                yield self.env.timeout(delay)

                outcome = yield from self._apply_hop(kind, entity_id, next_status, status)
                if not outcome.accepted:
                    logger.debug(
                        f"Progression for {key} stopped at {status.value}: {outcome.reason}"
                    )
                    break

                status = next_status
                with self.lock:
                    chain = self._chains.get(key)
                    if chain is None or chain.process is not process:
                        # Deregistered while applying the hop (terminal status).
                        return
                    chain.status = status
                if not self._acquire_lease(key):
                    logger.warning(f"Lost progression lease for {key}")
                    break
        except simpy.Interrupt:
            return
        except Exception:
            logger.exception(f"Progression chain for {key} failed")

        with self.lock:
            chain = self._chains.get(key)
            if chain is None or chain.process is not process:
                return
            del self._chains[key]
            lifecycle_progression_chains_active.set(len(self._chains))
        self._release_lease(key)

    def _apply_hop(
        self, kind: EntityKind, entity_id: str, next_status: StatusType, status: StatusType
    ) -> Generator[simpy.Event, Any, Outcome[Any]]:
        """Request the hop, backing off and retrying the same hop on transient failures.

        Only a business rejection ends the chain, so a database outage delays
        progression instead of leaving the entity without a chain. Past
        ``max_attempts`` the retries continue at the capped delay and log as errors.
        """
        attempt = 0
        while True:
            with log_entity_context(kind.value, entity_id):
                try:
                    return self.state_machine.request_transition(
                        kind, entity_id, next_status, SYSTEM_ACTOR, expected_status=status
                    )
                except self._retry.retryable_exceptions as e:
                    delay = self._retry.delay_for(attempt)
                    attempt += 1
                    log = logger.warning if attempt < self._retry.max_attempts else logger.error
                    log(
                        f"Hop {status.value} -> {next_status.value} failed "
                        f"(attempt {attempt}), retrying in {delay:.1f}s: {e}"
                    )
            yield self.env.timeout(delay)

    def _acquire_lease(self, key: str) -> bool:
        try:
            with self._session_factory() as session, transaction(session):
                return LeaseRepository(session).try_acquire(
                    key, self._instance_id, self._clock.now(), self._lease_ttl
                )
        except PersistenceError:
            logger.warning(f"Could not acquire progression lease for {key}", exc_info=True)
            return False

    def _release_lease(self, key: str) -> None:
        try:
            with self._session_factory() as session, transaction(session):
                LeaseRepository(session).release(key, self._instance_id)
        except PersistenceError:
            # Lease expires on its own after lease_ttl_seconds.
            logger.warning(f"Could not release progression lease for {key}", exc_info=True)
