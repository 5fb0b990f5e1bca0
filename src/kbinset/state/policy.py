"""Deterministic inset transition policy.

This module contains *no* payload parsing. Sources produce validated
events; the controller feeds them through :func:`transition` in arrival
order.
"""

from __future__ import annotations

from enum import StrEnum

from kbinset.state.events import ObstructionHidden, ObstructionShown, clamp_height


class InsetPhase(StrEnum):
    IDLE = "idle"
    OBSTRUCTED = "obstructed"


def transition(
    phase: InsetPhase,
    inset: float,
    event: ObstructionShown | ObstructionHidden,
) -> tuple[InsetPhase, float]:
    """Return the ``(phase, inset)`` pair that follows *event*.

    Policy:
    - ``Shown(h)`` from any phase: obstructed at ``h`` (last write wins).
    - ``Hidden`` from any phase: idle at zero, including ``Idle -> Idle``.

    The current state never influences the result: there is no reordering,
    timestamp comparison or debounce.
    """
    if isinstance(event, ObstructionShown):
        return InsetPhase.OBSTRUCTED, clamp_height(event.height)
    return InsetPhase.IDLE, 0.0


__all__ = ["InsetPhase", "transition"]
