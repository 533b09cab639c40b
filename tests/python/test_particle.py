from __future__ import annotations

from pygame.math import Vector3
from pytest import approx

from biofilm.sim.core.particle import MassPoint


def test_velocity_verlet_under_constant_force():
    point = MassPoint(position=Vector3(0.0, 0.0, 0.0))
    dt = 0.1

    point.apply_force(Vector3(2.0, 0.0, 0.0))
    point.integrate(dt)
    assert point.position.x == approx(0.0)
    assert point.velocity.x == approx(0.1)
    assert point.acceleration.x == approx(2.0)

    point.apply_force(Vector3(2.0, 0.0, 0.0))
    point.integrate(dt)
    assert point.position.x == approx(0.02)
    assert point.velocity.x == approx(0.3)


def test_net_force_is_cleared_by_integrate():
    point = MassPoint(position=Vector3(5.0, 5.0, 0.0), velocity=Vector3(1.0, 0.0, 0.0))
    point.apply_force(Vector3(3.0, -1.0, 0.5))
    point.apply_force(Vector3(1.0, 1.0, 0.0))
    assert point.net_force.x == approx(4.0)

    point.integrate(0.005)

    assert point.net_force.length_squared() == 0.0
