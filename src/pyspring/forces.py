"""
Force kernels for the spring embedder.

This module implements the vectorized pieces of one layout iteration:
pairwise offsets with a coincident-point guard, Coulomb-like repulsion
between every pair, superlinear spring attraction along edges, damped
velocity integration and centroid recentring. Positions and velocities are
(n x 2) NumPy arrays, one row per node.
"""

from __future__ import annotations

from typing import Sequence
import math

import numpy as np
from scipy.sparse import coo_matrix, csr_matrix


# Pairs closer than this are treated as coincident
MIN_SEPARATION = 1e-6

# Scale applied to the attraction strength
ATTRACTION_SCALE = 0.001

# Exponent of the attraction law
ATTRACTION_EXPONENT = 1.2


class Locks:
    """
    Manages locks over rows that must not be integrated.

    Pinned nodes, the node under drag and nodes whose position is no longer
    finite are locked for the duration of a tick.
    """

    def __init__(self):
        self.locks: set[int] = set()

    def add(self, id: int) -> None:
        """
        Add a lock on the row id.

        Args:
            id: Row of the node to be locked
        """
        self.locks.add(id)

    def clear(self) -> None:
        """Clear all locks."""
        self.locks = set()

    def mask(self, n: int) -> np.ndarray:
        """Boolean array of length n, True on locked rows."""
        held = np.zeros(n, dtype=bool)
        if self.locks:
            held[list(self.locks)] = True
        return held


class PseudoRandom:
    """Linear congruential pseudo random number generator."""

    def __init__(self, seed: int = 1):
        self.seed = seed
        self.a = 214013
        self.c = 2531011
        self.m = 2147483648
        self.range = 32767

    def get_next(self) -> float:
        """Get random real between 0 and 1."""
        self.seed = (self.seed * self.a + self.c) % self.m
        return (self.seed >> 16) / self.range

    def get_next_between(self, min_val: float, max_val: float) -> float:
        """Get random real between min and max."""
        return min_val + self.get_next() * (max_val - min_val)

    def offset_dir(self, length: float, k: int = 2) -> np.ndarray:
        """Random direction vector of the given length."""
        u = np.array([self.get_next_between(0.01, 1) - 0.5 for _ in range(k)])
        l = np.linalg.norm(u)
        if l == 0:
            u = np.zeros(k)
            u[0] = 1.0
            l = 1.0
        return u * (length / l)


def adjacency_matrix(pairs: Sequence[tuple[int, int]], n: int) -> csr_matrix:
    """
    Build the symmetric adjacency matrix of a set of directed edges.

    An edge in either direction makes two rows adjacent; mutual edges are
    counted once.

    Args:
        pairs: (source, target) row pairs
        n: Number of rows

    Returns:
        n x n sparse matrix with 1.0 on adjacent pairs
    """
    if len(pairs) == 0:
        return csr_matrix((n, n))
    src = np.fromiter((p[0] for p in pairs), dtype=np.int64, count=len(pairs))
    dst = np.fromiter((p[1] for p in pairs), dtype=np.int64, count=len(pairs))
    loop = src == dst
    src = src[~loop]
    dst = dst[~loop]
    rows = np.concatenate([src, dst])
    cols = np.concatenate([dst, src])
    m = coo_matrix((np.ones(rows.shape[0]), (rows, cols)), shape=(n, n)).tocsr()
    m.data[:] = 1.0
    return m


def pairwise_offsets(
    x: np.ndarray,
    random: PseudoRandom,
    min_separation: float = MIN_SEPARATION
) -> tuple[np.ndarray, np.ndarray]:
    """
    Compute offsets and distances between every pair of rows.

    Coincident pairs get a pseudo random direction and are reported as
    exactly min_separation apart, so no later division sees a zero.

    Args:
        x: Positions (n x 2)
        random: Source of perturbation directions
        min_separation: Distance under which two points are coincident

    Returns:
        (diff, dist) where diff[i, j] = x[i] - x[j] (n x n x 2) and
        dist is the n x n distance matrix
    """
    with np.errstate(invalid='ignore', over='ignore'):
        diff = x[:, np.newaxis, :] - x[np.newaxis, :, :]
        dist = np.sqrt(np.sum(diff ** 2, axis=2))
        coincident = np.triu(dist < min_separation, k=1)

    for i, j in np.argwhere(coincident):
        u = random.offset_dir(min_separation, x.shape[1])
        diff[i, j] = u
        diff[j, i] = -u
        dist[i, j] = min_separation
        dist[j, i] = min_separation

    return diff, dist


def repulsion_forces(
    diff: np.ndarray,
    dist: np.ndarray,
    active: np.ndarray,
    strength: float,
    attenuation: float,
    clipping: float
) -> np.ndarray:
    """
    Net repulsion on every row from every other active row.

    Magnitude is strength / d^2 - strength * attenuation * d, clipped above
    at clipping, along the unit vector from the other node to this one.
    Pairs too far apart for a finite distance or magnitude contribute
    nothing, and a net force that overflows is dropped.

    Args:
        diff: Pairwise offsets (n x n x 2)
        dist: Pairwise distances (n x n)
        active: Rows that take part (finite positions)
        strength: Coulomb constant
        attenuation: Linear damping factor, relative to strength
        clipping: Maximum magnitude

    Returns:
        Forces (n x 2)
    """
    n = dist.shape[0]
    pair = active[:, np.newaxis] & active[np.newaxis, :] & ~np.eye(n, dtype=bool)
    safe = np.where(pair, dist, 1.0)

    with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
        mag = strength / (safe * safe) - strength * attenuation * safe
        mag = np.minimum(mag, clipping)
        scale = mag / safe
        pair &= np.isfinite(scale)
        scale = np.where(pair, scale, 0.0)

        offsets = np.where(pair[:, :, np.newaxis], diff, 0.0)
        f = np.sum(offsets * scale[:, :, np.newaxis], axis=1)
    return np.where(np.isfinite(f), f, 0.0)


def attraction_forces(
    diff: np.ndarray,
    dist: np.ndarray,
    adjacency: csr_matrix,
    active: np.ndarray,
    strength: float
) -> np.ndarray:
    """
    Net spring attraction on every row toward its adjacent rows.

    Magnitude is -strength * ATTRACTION_SCALE * d^1.2, unbounded, so far
    apart neighbours are pulled harder, until the pull is no longer a
    finite number; such edges contribute nothing.

    Args:
        diff: Pairwise offsets (n x n x 2)
        dist: Pairwise distances (n x n)
        adjacency: Symmetric adjacency matrix (n x n)
        active: Rows that take part (finite positions)
        strength: Spring constant before scaling

    Returns:
        Forces (n x 2)
    """
    n = dist.shape[0]
    f = np.zeros((n, diff.shape[2]))
    coo = adjacency.tocoo()
    rows = coo.row
    cols = coo.col
    keep = active[rows] & active[cols] & (rows != cols)
    rows = rows[keep]
    cols = cols[keep]
    if rows.size == 0:
        return f

    d = dist[rows, cols]
    k = strength * ATTRACTION_SCALE
    with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
        mag = -k * np.power(d, ATTRACTION_EXPONENT)
        scale = mag / np.where(d > 0, d, 1.0)
        ok = (d > 0) & np.isfinite(scale)
        scale = np.where(ok, scale, 0.0)
        offsets = np.where(ok[:, np.newaxis], diff[rows, cols], 0.0)
        np.add.at(f, rows, offsets * scale[:, np.newaxis])
    return np.where(np.isfinite(f), f, 0.0)


def integrate(
    x: np.ndarray,
    v: np.ndarray,
    f: np.ndarray,
    held: np.ndarray,
    time_step: float,
    damping: float
) -> None:
    """
    Damped semi-implicit Euler step, in place.

    v' = (v + dt * F) * damping and p' = p + dt * v' on every row not held.
    """
    move = ~held
    with np.errstate(invalid='ignore', over='ignore'):
        v[move] = (v[move] + time_step * f[move]) * damping
        x[move] += time_step * v[move]


def recentre(
    x: np.ndarray,
    movable: np.ndarray,
    target: np.ndarray,
    speed: float,
    tolerance: float
) -> np.ndarray:
    """
    Translate the movable rows so the centroid drifts toward target.

    The centroid is taken over every finite row. The step length is capped
    at speed and nothing moves once the centroid is within tolerance.

    Returns:
        The translation applied (zero vector if none)
    """
    shift = np.zeros(x.shape[1])
    finite = np.all(np.isfinite(x), axis=1)
    if not np.any(finite) or not np.any(movable & finite):
        return shift

    c = np.mean(x[finite], axis=0)
    delta = target - c
    length = float(np.linalg.norm(delta))
    if not math.isfinite(length) or length <= tolerance:
        return shift

    step = min(speed, length)
    shift = delta * (step / length)
    x[movable & finite] += shift
    return shift


def kinetic_energy(v: np.ndarray) -> float:
    """Sum of squared velocities over the rows with finite velocity."""
    if v.size == 0:
        return 0.0
    finite = np.all(np.isfinite(v), axis=1)
    return float(np.sum(v[finite] ** 2))
