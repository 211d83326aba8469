"""
Rician Cluster Channel Model
============================
A small channel-matrix provider for the spectrum propagation loss model.

Each link carries L clusters. Cluster 0 follows the geometric line between
the two nodes and has a Rician gain; the remaining clusters are Rayleigh
with angles spread around the LOS direction. The matrix of cluster p is

    H_p = sqrt(P_p) · g_p · conj(a_u(AOA_p, ZOA_p)) · a_s(AOD_p, ZOD_p)^T

where a_s, a_u are the array responses of the two nodes (the rx response is
conjugated so that u_w^H · H_p · s_w combines coherently for steered beams
in either role). Matrices are kept per link and regenerated when the update
period elapses or an array changes size.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from channel import (
    SPEED_OF_LIGHT, ChannelMatrix, ChannelParams, Endpoint,
    db_to_linear, get_key,
)

logger = logging.getLogger(__name__)


# ============================================================================
#  Configuration
# ============================================================================

@dataclass
class ChannelModelParams:
    """Channel-matrix generation parameters."""
    frequency_hz: float = 28e9     # carrier frequency [Hz]
    update_period_s: float = 0.0   # 0 → never regenerate
    v_scatt_ms: float = 0.0        # max scatterer speed [m/s], 0 → off


@dataclass
class ClusterProfile:
    """Per-cluster power, delay and angular spread profile."""
    num_clusters: int = 4                       # L
    relative_powers_dB: List[float] = None      # per-cluster powers [dB]
    delays_ns: List[float] = None               # per-cluster delays [ns]
    K_factor_dB: float = 10.0                   # Rician K of the LOS cluster [dB], -inf → NLOS
    angle_spread_deg: float = 10.0              # std of cluster angle offsets

    def __post_init__(self):
        if self.relative_powers_dB is None:
            # Default: power decays 3 dB per cluster
            self.relative_powers_dB = [-3.0 * i for i in range(self.num_clusters)]
        if self.delays_ns is None:
            self.delays_ns = [100.0 * i for i in range(self.num_clusters)]
        if (len(self.relative_powers_dB) != self.num_clusters
                or len(self.delays_ns) != self.num_clusters):
            raise ValueError("Profile lists must have num_clusters entries")
        # Normalise relative powers to sum to 1 in linear scale
        lin = np.array([db_to_linear(p) for p in self.relative_powers_dB])
        self.relative_powers_linear = lin / lin.sum() if lin.size else lin
        self.K_factor_linear = db_to_linear(self.K_factor_dB)


# ============================================================================
#  Geometry
# ============================================================================

def los_angles(s: Endpoint, u: Endpoint) -> Tuple[float, float, float, float]:
    """(AOA, ZOA, AOD, ZOD) of the direct path from s to u [rad]."""
    d = u.position - s.position
    dist = np.linalg.norm(d)
    if dist <= 0.0:
        raise ValueError(
            f"Nodes {s.node_id} and {u.node_id} cannot share the same position")
    aod = math.atan2(d[1], d[0])
    zod = math.acos(d[2] / dist)
    aoa = math.atan2(-d[1], -d[0])
    zoa = math.acos(-d[2] / dist)
    return aoa, zoa, aod, zod


# ============================================================================
#  Channel model
# ============================================================================

class ClusterChannelModel:
    """Generate and cache one ChannelMatrix per link."""

    def __init__(self, params: ChannelModelParams, profile: ClusterProfile,
                 rng: np.random.Generator = None):
        self.params = params
        self.profile = profile
        self.rng = rng if rng is not None else np.random.default_rng()
        self._channels: Dict[int, ChannelMatrix] = {}
        self._params: Dict[int, ChannelParams] = {}

    @property
    def frequency_hz(self) -> float:
        return self.params.frequency_hz

    def get_channel(self, a: Endpoint, b: Endpoint, a_array, b_array,
                    t_s: float = 0.0) -> ChannelMatrix:
        key = get_key(a.node_id, b.node_id)
        channel = self._channels.get(key)
        if channel is None:
            logger.debug("No channel matrix for link (%d, %d)", a.node_id, b.node_id)
            s, u, s_array, u_array = a, b, a_array, b_array
        else:
            if channel.is_reverse(a.node_id, b.node_id):
                s, u, s_array, u_array = b, a, b_array, a_array
            else:
                s, u, s_array, u_array = a, b, a_array, b_array
            if not self._needs_update(channel, s_array, u_array, t_s):
                return channel
            logger.info("Updating channel matrix for link (%d, %d) at t=%.6f s",
                        s.node_id, u.node_id, t_s)
        channel, channel_params = self._generate(s, u, s_array, u_array, t_s)
        self._channels[key] = channel
        self._params[key] = channel_params
        return channel

    def get_params(self, a: Endpoint, b: Endpoint) -> Optional[ChannelParams]:
        return self._params.get(get_key(a.node_id, b.node_id))

    def _needs_update(self, channel: ChannelMatrix, s_array, u_array,
                      t_s: float) -> bool:
        if (channel.num_s_elements != s_array.num_elements
                or channel.num_u_elements != u_array.num_elements):
            return True
        period = self.params.update_period_s
        return period > 0 and t_s - channel.generated_at_s >= period

    def _generate(self, s: Endpoint, u: Endpoint, s_array, u_array,
                  t_s: float) -> Tuple[ChannelMatrix, ChannelParams]:
        rng = self.rng
        prof = self.profile
        L = prof.num_clusters
        spread = math.radians(prof.angle_spread_deg)

        aoa0, zoa0, aod0, zod0 = los_angles(s, u)
        angles = np.zeros((4, L))
        angles[:, :] = np.array([aoa0, zoa0, aod0, zod0])[:, None]
        if L > 1:
            angles[:, 1:] += rng.normal(0.0, spread, (4, L - 1))
        angles[1] = np.clip(angles[1], 0.0, np.pi)
        angles[3] = np.clip(angles[3], 0.0, np.pi)

        # Cluster gains: Rician LOS cluster, Rayleigh elsewhere
        w = (rng.standard_normal(L) + 1j * rng.standard_normal(L)) / np.sqrt(2)
        g = w.copy()
        los = math.isfinite(prof.K_factor_dB)
        if L > 0 and los:
            K = prof.K_factor_linear
            wavelength = SPEED_OF_LIGHT / self.params.frequency_hz
            los_phase = -2 * np.pi * s.distance_from(u) / wavelength
            g[0] = (np.sqrt(K / (K + 1)) * np.exp(1j * los_phase)
                    + np.sqrt(1.0 / (K + 1)) * w[0])
        amp = np.sqrt(prof.relative_powers_linear) * g

        h = np.zeros((L, u_array.num_elements, s_array.num_elements),
                     dtype=np.complex128)
        for p in range(L):
            a_u = np.conj(u_array.steering_vector(angles[0, p], angles[1, p]))
            a_s = s_array.steering_vector(angles[2, p], angles[3, p])
            h[p] = amp[p] * np.outer(a_u, a_s)

        channel = ChannelMatrix(
            h_usn=h,
            delays_s=np.array(prof.delays_ns, dtype=float) * 1e-9,
            angles_rad=angles,
            node_ids=(s.node_id, u.node_id),
            generated_at_s=t_s,
        )

        v = self.params.v_scatt_ms
        alpha = rng.uniform(-1.0, 1.0, L)
        d_scatter = rng.uniform(-v, v, L) if v > 0 else np.zeros(L)
        if L > 0 and los:
            alpha[0] = 0.0  # the direct path sees no scatterer
        channel_params = ChannelParams(
            alpha=alpha,
            d_scatter=d_scatter,
            node_ids=channel.node_ids,
            generation=channel.generation,
            los=los,
        )
        logger.debug("Generated channel %d for nodes %s with %d clusters",
                     channel.generation, channel.node_ids, L)
        return channel, channel_params
