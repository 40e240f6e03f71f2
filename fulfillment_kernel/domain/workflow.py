"""
Canonical workflow types (``fulfillment_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines.  Sales orders, purchase
orders, goods receipts and purchase requests each declare one ``Workflow``
table; services and the ORM ``before_update`` listener both validate status
changes through ``Workflow.require_transition`` so there is exactly one
source of truth per document type.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass

from fulfillment_kernel.exceptions import InvalidStateTransitionError


@dataclass(frozen=True)
class Guard:
    """A named precondition attached to a transition (descriptive only)."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    moves_stock: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action!r} references "
                    f"an undeclared state ({t.from_state} -> {t.to_state})"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    "has an outgoing transition"
                )

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def can_transition(self, from_state: str, to_state: str) -> bool:
        return self.find_transition(from_state, to_state) is not None

    def allowed_targets(self, from_state: str) -> tuple[str, ...]:
        return tuple(t.to_state for t in self.transitions if t.from_state == from_state)

    def require_transition(
        self,
        from_state: str,
        to_state: str,
        entity_id: object | None = None,
    ) -> Transition:
        """Return the matching transition or raise InvalidStateTransitionError."""
        transition = self.find_transition(from_state, to_state)
        if transition is None:
            raise InvalidStateTransitionError(
                entity=self.name,
                from_state=from_state,
                to_state=to_state,
                entity_id=entity_id,
            )
        return transition

    def require_state(
        self,
        current: str,
        allowed: tuple[str, ...],
        to_state: str,
        entity_id: object | None = None,
    ) -> None:
        """Raise unless ``current`` is one of ``allowed``.

        Used by operations that do not change status themselves but are only
        legal in certain states (e.g. creating a receipt for a PO).
        """
        if current not in allowed:
            raise InvalidStateTransitionError(
                entity=self.name,
                from_state=current,
                to_state=to_state,
                entity_id=entity_id,
            )
