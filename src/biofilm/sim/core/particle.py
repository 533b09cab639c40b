from __future__ import annotations

from dataclasses import dataclass, field

from pygame.math import Vector3

MASS = 1.0


@dataclass(slots=True)
class MassPoint:
    position: Vector3
    velocity: Vector3 = field(default_factory=Vector3)
    acceleration: Vector3 = field(default_factory=Vector3)
    net_force: Vector3 = field(default_factory=Vector3)

    def apply_force(self, force: Vector3) -> None:
        self.net_force += force

    def integrate(self, dt: float) -> None:
        """Advance one velocity-Verlet step and clear the force accumulator.

        All forces for the tick must already be accumulated.
        """
        self.position += self.velocity * dt + self.acceleration * (0.5 * dt * dt)
        new_acceleration = self.net_force * (1.0 / MASS)
        self.velocity += (self.acceleration + new_acceleration) * (0.5 * dt)
        self.acceleration = new_acceleration
        self.net_force = Vector3()
