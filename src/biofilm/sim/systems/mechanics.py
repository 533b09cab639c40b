from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Iterator

from pygame.math import Vector3

from ..core.chain import Chain
from ..core.particle import MassPoint
from ..core.spatial_grid import SpatialGrid
from ..utils.math3d import _angle_between, _safe_normalize

if TYPE_CHECKING:
    from ..core.world import World


@dataclass(slots=True)
class ParticleRef:
    """A chain particle as seen by the broad phase."""

    chain: Chain
    index: int
    particle: MassPoint

    @property
    def position(self) -> Vector3:
        return self.particle.position


def particle_refs(chain: Chain) -> Iterator[ParticleRef]:
    return (ParticleRef(chain, index, particle) for index, particle in enumerate(chain.particles))


def build_particle_index(chains: Iterable[Chain], cell_size: float) -> SpatialGrid[ParticleRef]:
    return SpatialGrid(cell_size, (ref for chain in chains for ref in particle_refs(chain)))


def apply_axial_springs(world: World, chain: Chain, rest_length: float) -> None:
    config = world._config
    stiffness = config.chain.spring_stiffness
    trailing_scale = 1.0 if config.symmetric_forces else config.chain.spring_reaction_factor
    particles = chain.particles
    for i in range(len(particles) - 1):
        p1 = particles[i]
        p2 = particles[i + 1]
        displacement = p2.position - p1.position
        magnitude = stiffness * (displacement.length() - rest_length)
        pull = _safe_normalize(displacement) * magnitude
        p1.apply_force(pull)
        p2.apply_force(pull * -trailing_scale)


def apply_bending_springs(world: World, chain: Chain) -> None:
    config = world._config
    stiffness = config.chain.bending_stiffness
    rest_angle = config.chain.rest_angle
    middle_weight = 2.0 if config.symmetric_forces else 1.0
    particles = chain.particles
    for i in range(len(particles) - 2):
        p1 = particles[i]
        p2 = particles[i + 1]
        p3 = particles[i + 2]
        arm1 = p1.position - p2.position
        arm2 = p3.position - p2.position
        torque = stiffness * (_angle_between(arm1, arm2) - rest_angle)
        force = _safe_normalize(arm1.cross(arm2)) * torque
        p1.apply_force(-force)
        p2.apply_force(force * middle_weight)
        p3.apply_force(-force)


def apply_damping(world: World, chain: Chain) -> None:
    damping = chain.velocity * -chain.friction
    for particle in chain.particles:
        particle.apply_force(damping)


def accumulate_internal_forces(world: World, chain: Chain, rest_length: float) -> None:
    apply_axial_springs(world, chain, rest_length)
    apply_bending_springs(world, chain)
    apply_damping(world, chain)


def repulsion_force(self_position: Vector3, other_position: Vector3, cutoff: float, magnitude: float) -> Vector3:
    """Constant-magnitude push on ``self_position`` away from ``other_position`` inside ``cutoff``."""
    separation = other_position - self_position
    if separation.length() >= cutoff:
        return Vector3()
    return _safe_normalize(separation) * -magnitude


def accumulate_repulsion(world: World, chain: Chain, index: SpatialGrid[ParticleRef]) -> int:
    """Push ``chain`` apart from every other chain particle inside the cutoff.

    Returns the number of candidate pairs examined. With symmetric forces each
    pair of chains is handled once, by the chain with the lower id; the
    reference model visits both orderings and spreads the push over all
    particles of both chains.
    """
    config = world._config
    symmetric = config.symmetric_forces
    cutoff = config.chain.cutoff
    magnitude = config.chain.repulsion_force
    reaction = config.chain.repulsion_reaction_factor
    checks = 0
    for particle in chain.particles:
        for ref in index.neighbors(particle.position):
            other = ref.chain
            if other is chain:
                continue
            if symmetric and other.id < chain.id:
                continue
            checks += 1
            force = repulsion_force(particle.position, ref.position, cutoff, magnitude)
            if force.length_squared() == 0.0:
                continue
            if symmetric:
                particle.apply_force(force)
                ref.particle.apply_force(-force)
            else:
                for own in chain.particles:
                    own.apply_force(force)
                for theirs in other.particles:
                    theirs.apply_force(force * -reaction)
    return checks
