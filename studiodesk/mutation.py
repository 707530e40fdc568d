"""Optimistic mutation controller.

Applies a local change immediately, issues exactly one remote mutation, and
reconciles: rollback plus a user-visible error when the remote call fails or
echoes a value other than the one requested.

Example:
    >>> controller = OptimisticMutationController(notifier, entities={p.id: p})
    >>> outcome = await controller.mutate(
    ...     p.id, "status", ProjectStatus.PRODUCTION, persist_status
    ... )
    >>> outcome.state
    <MutationState.APPLIED: 'applied'>
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Hashable, Mapping, TypeVar

from pydantic import BaseModel

from studiodesk.gateway.errors import GatewayError, VerificationMismatch
from studiodesk.notifications import Notifier, describe_failure, error

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
E = TypeVar("E", bound=BaseModel)

RemoteMutation = Callable[[Any, Any], Awaitable[Any]]
Reconcile = Callable[[Any], Awaitable[None]]


class MutationState(str, Enum):
    NOOP = "noop"  # Target equals current value
    IGNORED = "ignored"  # Another mutation for the entity is in flight
    APPLIED = "applied"
    ROLLED_BACK = "rolled_back"
    STALE = "stale"  # Result arrived after dispose()/reset(); discarded


@dataclass(slots=True)
class MutationOutcome:
    state: MutationState
    value: Any = None
    error: GatewayError | None = None

    @property
    def succeeded(self) -> bool:
        return self.state in (MutationState.NOOP, MutationState.APPLIED)


class OptimisticMutationController(Generic[K, E]):
    """Owns a keyed set of entities and mutates them optimistically.

    Only one mutation per entity may be in flight; further gestures on that
    entity are ignored until it settles. Every mutation is tagged with the
    controller's generation, and results from an older generation never touch
    state.
    """

    def __init__(
        self,
        notifier: Notifier,
        entities: Mapping[K, E] | None = None,
        *,
        reconcile: Reconcile | None = None,
    ):
        self.notifier = notifier
        self.entities: dict[K, E] = dict(entities or {})
        self.reconcile = reconcile
        self.generation = 0
        self._in_flight: set[K] = set()

    def is_in_flight(self, key: K) -> bool:
        return key in self._in_flight

    def reset(self, entities: Mapping[K, E]) -> None:
        """Replace local state (after a fetch); pending results become stale."""
        self.generation += 1
        self.entities = dict(entities)
        self._in_flight.clear()

    def dispose(self) -> None:
        """Stop accepting results for mutations already issued."""
        self.generation += 1
        self._in_flight.clear()

    async def mutate(
        self,
        key: K,
        field: str,
        target: Any,
        remote: RemoteMutation,
        *,
        snapshot: E | None = None,
        verify: Callable[[Any], Any] | None = None,
        patch: Mapping[str, Any] | None = None,
        action: str = "update",
        silent: bool = False,
    ) -> MutationOutcome:
        """Optimistically set ``entity.field = target`` and persist it.

        Args:
            key: Entity identity
            field: Attribute being changed
            target: Requested value
            remote: ``remote(key, target)`` coroutine; returns the echoed value
                or ``None`` when the store does not echo
            snapshot: Entity state to restore on failure (defaults to a copy
                taken before patching)
            verify: Normalizes the echoed value before comparing with target
            patch: Extra fields applied (and rolled back) with ``field``
            action: Short phrase used in the user-facing error
            silent: Roll back without notifying; the caller reports the failure

        Raises:
            Exception: Anything other than a ``GatewayError`` raised by
                ``remote`` or ``verify`` propagates after the rollback
        """
        entity = self.entities[key]
        current = getattr(entity, field)
        if current == target and not patch:
            return MutationOutcome(MutationState.NOOP, value=current)

        if key in self._in_flight:
            logger.info("mutation_ignored_in_flight: key=%s field=%s", key, field)
            return MutationOutcome(MutationState.IGNORED, value=current)

        previous = snapshot if snapshot is not None else entity.model_copy(deep=True)
        generation = self.generation
        self._in_flight.add(key)
        self.entities[key] = entity.model_copy(update={field: target, **dict(patch or {})})

        failure: GatewayError | None = None
        try:
            echoed = await remote(key, target)
            if echoed is not None:
                observed = verify(echoed) if verify else echoed
                if observed != target:
                    raise VerificationMismatch(target, observed)
        except GatewayError as exc:
            failure = exc
        except (Exception, asyncio.CancelledError):
            if generation == self.generation:
                self.entities[key] = previous
            logger.exception("mutation_aborted: key=%s field=%s target=%s", key, field, target)
            raise
        finally:
            if generation == self.generation:
                self._in_flight.discard(key)

        if generation != self.generation:
            logger.info("mutation_result_discarded: key=%s generation=%s", key, generation)
            if failure is not None:
                return MutationOutcome(MutationState.STALE, error=failure)
            return MutationOutcome(MutationState.STALE, value=target)

        if failure is not None:
            self.entities[key] = previous
            logger.warning(
                "mutation_rolled_back: key=%s field=%s target=%s error=%s",
                key,
                field,
                target,
                failure.message,
            )
            if not silent:
                error(self.notifier, "Update failed", describe_failure(failure, action))
            return MutationOutcome(
                MutationState.ROLLED_BACK, value=getattr(previous, field), error=failure
            )

        logger.info("mutation_applied: key=%s field=%s target=%s", key, field, target)
        if self.reconcile is not None:
            await self.reconcile(key)
        return MutationOutcome(MutationState.APPLIED, value=target)
