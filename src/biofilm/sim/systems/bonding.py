from __future__ import annotations

from typing import TYPE_CHECKING, List

from pygame.math import Vector3

from ..core.matrix import MatrixParticle
from ..core.spatial_grid import SpatialGrid
from ..utils.math3d import _safe_normalize
from .mechanics import ParticleRef, build_particle_index, repulsion_force

if TYPE_CHECKING:
    from ..core.world import World


def bonding_open(world: World, now: float) -> bool:
    return now > world._next_bond_check_time and now > world._config.matrix.bond_warmup


def matrix_bond_force(world: World, particle: MatrixParticle, other_position: Vector3) -> Vector3:
    """Force on ``particle`` from a bonded matrix partner."""
    matrix = world._config.matrix
    separation = other_position - particle.position
    magnitude = matrix.matrix_bond_stiffness * matrix.epsilon * (separation.length() - matrix.sigma)
    if not world._config.symmetric_forces:
        magnitude = -magnitude
    return _safe_normalize(separation) * magnitude


def chain_bond_force(world: World, particle: MatrixParticle, other_position: Vector3) -> Vector3:
    """Force on ``particle`` from a bonded chain particle."""
    matrix = world._config.matrix
    separation = other_position - particle.position
    rest = matrix.sigma + world._config.chain.sigma
    magnitude = matrix.chain_bond_stiffness * matrix.epsilon * (2.0 * separation.length() - rest)
    if not world._config.symmetric_forces:
        magnitude = -magnitude
    return _safe_normalize(separation) * magnitude


def apply_matrix_repulsion(world: World, index: SpatialGrid[MatrixParticle]) -> int:
    matrix = world._config.matrix
    checks = 0
    for particle in world._matrix:
        for other in index.neighbors(particle.position):
            if other.id <= particle.id:
                continue
            checks += 1
            force = repulsion_force(particle.position, other.position, matrix.cutoff, matrix.repulsion_force)
            particle.apply_force(force)
            other.apply_force(-force)
    return checks


def _within(a: Vector3, b: Vector3, cutoff: float) -> bool:
    return a.distance_to(b) < cutoff


def bond_matrix_pairs(world: World, index: SpatialGrid[MatrixParticle], now: float) -> int:
    """Form new matrix-matrix bonds and apply the bond force of existing ones."""
    config = world._config
    cutoff = config.matrix.cutoff
    beyond_cutoff = config.matrix.bond_force_beyond_cutoff
    open_for_bonds = bonding_open(world, now)
    formed = 0

    for particle in world._matrix:
        candidates: List[MatrixParticle] = [
            other for other in index.neighbors(particle.position) if other.id > particle.id
        ]
        for other in candidates:
            close = _within(particle.position, other.position, cutoff)
            if close and open_for_bonds and not particle.is_bonded(other.key):
                if world._rng.chance(config.matrix.bond_probability):
                    particle.bond(other.key)
                    other.bond(particle.key)
                    formed += 1
            if close and not beyond_cutoff and particle.is_bonded(other.key):
                force = matrix_bond_force(world, particle, other.position)
                particle.apply_force(force)
                other.apply_force(-force)

        if beyond_cutoff:
            for owner_id, _ in list(particle.bonds):
                other = world._matrix_by_id.get(owner_id)
                if other is None or other.id < particle.id:
                    continue
                force = matrix_bond_force(world, particle, other.position)
                particle.apply_force(force)
                other.apply_force(-force)
    return formed


def _apply_chain_bond(world: World, particle: MatrixParticle, ref: ParticleRef) -> None:
    force = chain_bond_force(world, particle, ref.position)
    particle.apply_force(force)
    # Chain particles have already integrated this tick.
    if world._config.symmetric_forces:
        ref.chain.defer_force(ref.index, -force)
    else:
        for index in range(len(ref.chain.particles)):
            ref.chain.defer_force(index, -force)
    ref.chain.friction += world._config.matrix.friction_increment


def bond_chain_particles(world: World, index: SpatialGrid[ParticleRef], now: float) -> int:
    """Form new matrix-chain bonds and apply drag and bond force of existing ones."""
    config = world._config
    cutoff = config.matrix.cutoff
    beyond_cutoff = config.matrix.bond_force_beyond_cutoff
    open_for_bonds = bonding_open(world, now)
    formed = 0

    for particle in world._matrix:
        for ref in list(index.neighbors(particle.position)):
            key = (ref.chain.id, ref.index)
            close = _within(particle.position, ref.position, cutoff)
            if close and open_for_bonds and not particle.is_bonded(key):
                if world._rng.chance(config.matrix.bond_probability):
                    particle.bond(key)
                    formed += 1
            if close and not beyond_cutoff and particle.is_bonded(key):
                _apply_chain_bond(world, particle, ref)

        if beyond_cutoff:
            for owner_id, index_in_owner in list(particle.bonds):
                chain = world._chains_by_id.get(owner_id)
                if chain is None:
                    continue
                _apply_chain_bond(world, particle, ParticleRef(chain, index_in_owner, chain.particles[index_in_owner]))
    return formed


def advance_matrix(world: World, now: float, dt: float) -> int:
    """One tick for every matrix particle; returns the number of bonds formed."""
    if not world._matrix:
        return 0
    config = world._config
    for particle in world._matrix:
        particle.velocity = Vector3()

    matrix_cell = max(config.matrix.cutoff, config.chain.broad_phase_cell_size)
    matrix_index: SpatialGrid[MatrixParticle] = SpatialGrid(matrix_cell, world._matrix)
    world._last_neighbor_checks += apply_matrix_repulsion(world, matrix_index)
    formed = bond_matrix_pairs(world, matrix_index, now)

    chain_index = build_particle_index(world._chains, matrix_cell)
    formed += bond_chain_particles(world, chain_index, now)

    for particle in world._matrix:
        particle.integrate(dt)
    return formed
