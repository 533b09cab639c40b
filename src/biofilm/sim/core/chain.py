from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from pygame.math import Vector3

from ..utils.math3d import _heading, _safe_normalize, _unit
from .particle import MassPoint

CHAIN_LENGTH = 7
HEAD_INDEX = 0
PIVOT_INDEX = 3
TAIL_INDEX = CHAIN_LENGTH - 1


class MotilityState(str, Enum):
    RUNNING = "Running"
    TUMBLING = "Tumbling"


@dataclass(slots=True)
class Chain:
    """One bacterium: seven mass points coupled by axial and bending springs."""

    id: int
    particles: List[MassPoint]
    color: Tuple[int, int, int]
    birth_time: float
    growth_rate: float
    velocity: Vector3
    direction: Vector3
    state: MotilityState = MotilityState.RUNNING
    state_end_time: float = 0.0
    clockwise: bool = True
    trail_clockwise: bool = True
    friction: float = 0.1
    emission_interval: float = 0.0
    next_emission_time: float = 0.0
    parent_id: Optional[int] = None
    divided: bool = False
    daughters: List["Chain"] = field(default_factory=list)
    pending_forces: List[Vector3] = field(default_factory=lambda: [Vector3() for _ in range(CHAIN_LENGTH)])

    @property
    def head(self) -> MassPoint:
        return self.particles[HEAD_INDEX]

    @property
    def pivot(self) -> MassPoint:
        return self.particles[PIVOT_INDEX]

    @property
    def tail(self) -> MassPoint:
        return self.particles[TAIL_INDEX]

    @property
    def running(self) -> bool:
        return self.state is MotilityState.RUNNING

    @property
    def tumbling(self) -> bool:
        return self.state is MotilityState.TUMBLING

    def axis(self) -> Vector3:
        """Unit vector from head to tail."""
        return _safe_normalize(self.tail.position - self.head.position)

    def positions(self) -> List[Tuple[float, float]]:
        return [(p.position.x, p.position.y) for p in self.particles]

    def defer_force(self, index: int, force: Vector3) -> None:
        """Queue ``force`` for particle ``index``; it is applied at the next force pass."""
        self.pending_forces[index] += force

    def apply_pending_forces(self) -> None:
        for particle, pending in zip(self.particles, self.pending_forces):
            if pending.x or pending.y or pending.z:
                particle.apply_force(pending)
                pending.update(0.0, 0.0, 0.0)

    def lay_out(self, head_x: float, head_y: float, spacing: float) -> None:
        """Place every particle on a straight line from the head along ``direction``."""
        heading = _unit(_heading(self.direction))
        step_x = spacing * heading.x
        step_y = spacing * heading.y
        for index, particle in enumerate(self.particles):
            particle.position.update(head_x + index * step_x, head_y + index * step_y, 0.0)


def build_particles(head_x: float, head_y: float, direction: Vector3, spacing: float, velocity: Vector3) -> List[MassPoint]:
    heading = _unit(_heading(direction))
    return [
        MassPoint(
            position=Vector3(head_x + i * spacing * heading.x, head_y + i * spacing * heading.y, 0.0),
            velocity=Vector3(velocity),
        )
        for i in range(CHAIN_LENGTH)
    ]
