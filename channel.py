"""
Geometric Cluster Channel: Data Model and Large-Scale Propagation
===================================================================
Shared types for the spectrum propagation loss model.

This module implements:
- Order-independent link keys for unordered node pairs
- Endpoint (node id + mobility state) used by every link computation
- ChannelMatrix: immutable per-cluster antenna-pair coefficients, delays
  and cluster angles, tagged with a generation id
- ChannelParams: per-cluster scatterer Doppler terms of one generation
- ChannelMatrixProvider: the interface the propagation model consumes
- Large-scale path loss: close-in (CI) free-space reference model with
  optional log-normal shadowing
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Tuple

import numpy as np

logger = logging.getLogger(__name__)


# ============================================================================
#  Constants
# ============================================================================
SPEED_OF_LIGHT = 3e8          # m/s
BOLTZMANN      = 1.380649e-23 # J/K

# Rows of ChannelMatrix.angles_rad
AOA_INDEX = 0  # azimuth of arrival
ZOA_INDEX = 1  # zenith of arrival
AOD_INDEX = 2  # azimuth of departure
ZOD_INDEX = 3  # zenith of departure


# ============================================================================
#  Helper functions
# ============================================================================


def db_to_linear(x_db: float) -> float:
    return 10.0 ** (x_db / 10.0)


def linear_to_db(x_lin: float) -> float:
    return 10.0 * np.log10(np.maximum(x_lin, 1e-30))


def get_key(a_id: int, b_id: int) -> int:
    """
    Link key for the unordered node pair {a, b}.

    The smaller id goes in the high 32 bits and the larger one in the low
    32 bits, so get_key(a, b) == get_key(b, a) and distinct pairs of ids
    below 2**32 never collide. Ids outside [0, 2**32) raise ValueError.
    """
    for node_id in (a_id, b_id):
        if not 0 <= node_id < 2**32:
            raise ValueError(f"Node id {node_id} outside [0, 2**32)")
    lo, hi = min(a_id, b_id), max(a_id, b_id)
    return (int(lo) << 32) | int(hi)


def _as_vector(v) -> np.ndarray:
    v = np.asarray(v, dtype=float).reshape(-1)
    if v.shape != (3,):
        raise ValueError(f"Expected a 3D vector, got shape {v.shape}")
    return v


# ============================================================================
#  Endpoints
# ============================================================================

@dataclass
class Endpoint:
    """A node taking part in a link: identifier plus mobility state."""
    node_id: int
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))  # [m]
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))  # [m/s]

    def __post_init__(self):
        self.position = _as_vector(self.position)
        self.velocity = _as_vector(self.velocity)

    def distance_from(self, other: "Endpoint") -> float:
        return float(np.linalg.norm(self.position - other.position))

    def move_to(self, position) -> None:
        self.position = _as_vector(position)


# ============================================================================
#  Channel matrix and parameters
# ============================================================================

_generation_counter = itertools.count()


def _readonly(a: np.ndarray) -> np.ndarray:
    a = np.array(a, copy=True)
    a.setflags(write=False)
    return a


@dataclass(eq=False)
class ChannelMatrix:
    """
    Snapshot of the small-scale channel between nodes s and u.

    Parameters
    ----------
    h_usn          : (n_clusters, n_u, n_s) complex coefficients,
                     indexed [cluster][rx element][tx element]
    delays_s       : (n_clusters,) cluster propagation delays [s]
    angles_rad     : (4, n_clusters) cluster centre angles, rows
                     AOA, ZOA, AOD, ZOD [rad]
    node_ids       : (s_id, u_id) of the pair the matrix was generated for
    generated_at_s : simulation time of generation [s]

    Every instance receives a fresh ``generation`` id; two matrices for the
    same link are the same realisation only if their generations match.
    """
    h_usn: np.ndarray
    delays_s: np.ndarray
    angles_rad: np.ndarray
    node_ids: Tuple[int, int]
    generated_at_s: float = 0.0
    generation: int = field(init=False,
                            default_factory=lambda: next(_generation_counter))

    def __post_init__(self):
        h = np.asarray(self.h_usn, dtype=np.complex128)
        if h.ndim != 3:
            raise ValueError(
                f"h_usn must be (n_clusters, n_u, n_s), got shape {h.shape}")
        n_clusters = h.shape[0]
        delays = np.asarray(self.delays_s, dtype=float).reshape(-1)
        if delays.shape != (n_clusters,):
            raise ValueError(
                f"delays_s has {delays.size} entries for {n_clusters} clusters")
        angles = np.asarray(self.angles_rad, dtype=float)
        if angles.shape != (4, n_clusters):
            raise ValueError(
                f"angles_rad must be (4, {n_clusters}), got shape {angles.shape}")
        self.h_usn = _readonly(h)
        self.delays_s = _readonly(delays)
        self.angles_rad = _readonly(angles)
        self.node_ids = (int(self.node_ids[0]), int(self.node_ids[1]))

    @property
    def num_clusters(self) -> int:
        return self.h_usn.shape[0]

    @property
    def num_u_elements(self) -> int:
        return self.h_usn.shape[1]

    @property
    def num_s_elements(self) -> int:
        return self.h_usn.shape[2]

    def is_reverse(self, a_id: int, b_id: int) -> bool:
        """True if the matrix was generated with b as s-node and a as u-node."""
        s_id, u_id = self.node_ids
        if (a_id, b_id) == (s_id, u_id):
            return False
        if (a_id, b_id) == (u_id, s_id):
            return True
        raise ValueError(
            f"Channel matrix for nodes {self.node_ids} queried for ({a_id}, {b_id})")


@dataclass(eq=False)
class ChannelParams:
    """
    Per-cluster Doppler parameters belonging to one ChannelMatrix generation.

    alpha and d_scatter model moving scatterers (TR 37.885 Sec. 6.2.3): the
    extra Doppler contribution of cluster n is 2 * alpha_n * D_n, with
    alpha_n ~ U(-1, 1) and D_n ~ U(-v_scatt, v_scatt) [m/s].
    """
    alpha: np.ndarray
    d_scatter: np.ndarray
    node_ids: Tuple[int, int]
    generation: int = -1
    los: bool = True

    def __post_init__(self):
        self.alpha = _readonly(np.asarray(self.alpha, dtype=float).reshape(-1))
        self.d_scatter = _readonly(
            np.asarray(self.d_scatter, dtype=float).reshape(-1))
        if self.alpha.shape != self.d_scatter.shape:
            raise ValueError("alpha and d_scatter must have the same length")

    @property
    def num_clusters(self) -> int:
        return self.alpha.size


class ChannelMatrixProvider(Protocol):
    """Anything able to answer get_channel(a, b) with a versioned matrix."""

    @property
    def frequency_hz(self) -> float: ...

    def get_channel(self, a: Endpoint, b: Endpoint, a_array, b_array,
                    t_s: float = 0.0) -> Optional[ChannelMatrix]: ...

    def get_params(self, a: Endpoint, b: Endpoint) -> Optional[ChannelParams]: ...


# ============================================================================
#  Large-Scale Path Loss  (close-in free-space reference model)
# ============================================================================

# (path loss exponent, shadowing std [dB]) for LOS and NLOS
CI_PATH_LOSS_PARAMS: Dict[str, Dict[str, Tuple[float, float]]] = {
    "UMi": {"los": (2.0, 4.0), "nlos": (3.2, 7.0)},
    "UMa": {"los": (2.0, 4.1), "nlos": (2.9, 7.0)},
    "RMa": {"los": (2.31, 1.7), "nlos": (3.07, 1.7)},
    "InH": {"los": (1.73, 3.02), "nlos": (3.19, 8.29)},
    "InF": {"los": (1.7, 3.0), "nlos": (2.7, 8.0)},
}


@dataclass
class PathLossParams:
    """Large-scale propagation parameters for one link."""
    frequency_hz: float = 28e9          # carrier frequency [Hz]
    scenario: str = "UMi"               # key of CI_PATH_LOSS_PARAMS
    los: bool = True                    # channel condition (decided upstream)
    shadowing_enabled: bool = True
    exponent: Optional[float] = None    # overrides the scenario exponent
    shadowing_std_dB: Optional[float] = None
    min_distance_m: float = 1.0         # CI reference distance d0

    def __post_init__(self):
        if self.scenario not in CI_PATH_LOSS_PARAMS:
            raise ValueError(f"Unknown scenario: {self.scenario}")
        n, sigma = CI_PATH_LOSS_PARAMS[self.scenario]["los" if self.los else "nlos"]
        if self.exponent is None:
            self.exponent = n
        if self.shadowing_std_dB is None:
            self.shadowing_std_dB = sigma


class LargeScalePathLoss:
    """Compute the large-scale path loss and rx power for a single link."""

    def __init__(self, params: PathLossParams):
        self.params = params

    @property
    def wavelength_m(self) -> float:
        return SPEED_OF_LIGHT / self.params.frequency_hz

    # --- Free-space path loss [dB] ---
    @staticmethod
    def fspl_dB(d_m: float, wavelength_m: float) -> float:
        return 20.0 * np.log10(4.0 * np.pi * d_m / wavelength_m)

    def sample_shadowing_dB(self, rng: np.random.Generator = None) -> float:
        if not self.params.shadowing_enabled:
            return 0.0
        if rng is None:
            rng = np.random.default_rng()
        return float(rng.normal(0.0, self.params.shadowing_std_dB))

    # --- CI model: PL(d) = FSPL(d0) + 10 n log10(d / d0) + X_sigma ---
    def path_loss_dB(self, d_m: float, rng: np.random.Generator = None) -> float:
        d0 = self.params.min_distance_m
        d = max(float(d_m), d0)
        pl = (self.fspl_dB(d0, self.wavelength_m)
              + 10.0 * self.params.exponent * np.log10(d / d0))
        return float(pl + self.sample_shadowing_dB(rng))

    def calc_rx_power_dBm(self, tx_power_dBm: float, a: Endpoint, b: Endpoint,
                          rng: np.random.Generator = None) -> float:
        """Rx power = tx power - path loss, antenna gains excluded."""
        pl = self.path_loss_dB(a.distance_from(b), rng)
        logger.debug("Path loss between %d and %d: %.2f dB",
                     a.node_id, b.node_id, pl)
        return tx_power_dBm - pl

    def large_scale_gain_linear(self, PL_tot_dB: float) -> float:
        return db_to_linear(-PL_tot_dB)
