from __future__ import annotations

from pygame.math import Vector3

from biofilm.sim.core.trail import TrailField


def test_first_visit_fixes_heading():
    trail = TrailField()
    trail.deposit(3.2, 4.9, Vector3(1.0, 0.0, 0.0))
    cell = trail.deposit(3.8, 4.1, Vector3(0.0, 1.0, 0.0))

    assert len(trail) == 1
    assert cell.count == 2
    assert (cell.heading.x, cell.heading.y) == (1.0, 0.0)


def test_lookup_missing_cell_returns_none():
    trail = TrailField()
    trail.deposit(10.0, 10.0, Vector3(1.0, 0.0, 0.0))
    assert trail.lookup(11.0, 10.0) is None
    assert trail.lookup(10.7, 10.2) is not None


def test_heading_is_copied_on_deposit():
    trail = TrailField()
    heading = Vector3(0.0, 1.0, 0.0)
    trail.deposit(1.0, 1.0, heading)
    heading.x = 5.0
    assert trail.lookup(1.0, 1.0).heading.x == 0.0


def test_cells_and_clear():
    trail = TrailField()
    trail.deposit(1.0, 2.0, Vector3(1.0, 0.0, 0.0))
    trail.deposit(1.5, 2.5, Vector3(1.0, 0.0, 0.0))
    trail.deposit(7.0, 8.0, Vector3(0.0, 1.0, 0.0))

    assert dict(trail.cells()) == {(1, 2): 2, (7, 8): 1}
    assert len(trail) == 2

    trail.clear()
    assert len(trail) == 0
    assert list(trail.cells()) == []
