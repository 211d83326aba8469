"""
Spectrum Propagation Loss: Fast Fading and Beamforming Gain
=============================================================
Turns a tx PSD into the rx PSD of a link by applying the cluster channel
matrix together with the tx and rx beamforming vectors.

This module implements:
- Long-term component: per-cluster reduction  u_w^H · H_n · s_w
- Long-term cache keyed by link, invalidated on a new channel realisation
  or a beam change
- Doppler phase of each cluster from the node velocities and cluster angles
- Beamforming gain per subcarrier including the propagation-delay phase
- SpectrumPropagationLossModel: the per-call orchestration
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Tuple

import numpy as np

from channel import (
    SPEED_OF_LIGHT, AOA_INDEX, ZOA_INDEX, AOD_INDEX, ZOD_INDEX,
    ChannelMatrix, ChannelMatrixProvider, ChannelParams, Endpoint, get_key,
)
from spectrum import SpectrumValue

logger = logging.getLogger(__name__)


# ============================================================================
#  Long-term component
# ============================================================================

def calc_long_term(channel: ChannelMatrix, s_w: np.ndarray,
                   u_w: np.ndarray) -> np.ndarray:
    """
    Long-term component of every cluster.

        longTerm[n] = Σ_i Σ_j conj(u_w[i]) · H[n, i, j] · s_w[j]

    Parameters
    ----------
    channel : channel matrix with H of shape (n_clusters, n_u, n_s)
    s_w     : (n_s,) beamforming vector of the s node
    u_w     : (n_u,) beamforming vector of the u node

    Returns
    -------
    long_term : (n_clusters,) complex128
    """
    s_w = np.asarray(s_w, dtype=np.complex128)
    u_w = np.asarray(u_w, dtype=np.complex128)
    if s_w.ndim != 1 or s_w.size != channel.num_s_elements:
        raise ValueError(
            f"s beamforming vector has {s_w.size} weights, "
            f"channel expects {channel.num_s_elements}")
    if u_w.ndim != 1 or u_w.size != channel.num_u_elements:
        raise ValueError(
            f"u beamforming vector has {u_w.size} weights, "
            f"channel expects {channel.num_u_elements}")
    logger.debug("Computing long term: %d clusters, %d s elements, %d u elements",
                 channel.num_clusters, s_w.size, u_w.size)
    return np.einsum("i,nij,j->n", np.conj(u_w), channel.h_usn, s_w)


@dataclass(frozen=True, eq=False)
class LongTerm:
    """Long-term component of one link and the inputs that produced it."""
    long_term: np.ndarray
    channel_generation: int
    s_w: np.ndarray
    u_w: np.ndarray

    def matches(self, channel: ChannelMatrix, s_w, u_w) -> bool:
        return (self.channel_generation == channel.generation
                and np.array_equal(self.s_w, s_w)
                and np.array_equal(self.u_w, u_w))


def _frozen_copy(a) -> np.ndarray:
    a = np.array(a, dtype=np.complex128, copy=True)
    a.setflags(write=False)
    return a


class LongTermCache:
    """
    Long-term components per link key.

    Entries are published once and replaced wholesale when the channel
    generation or either beamforming vector changes.
    """

    def __init__(self, compute: Callable[..., np.ndarray] = calc_long_term):
        self._compute = compute
        self._entries: Dict[int, LongTerm] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: int) -> bool:
        return key in self._entries

    def get(self, key: int, channel: ChannelMatrix, s_w, u_w) -> np.ndarray:
        entry = self._entries.get(key)
        if entry is not None and entry.matches(channel, s_w, u_w):
            logger.debug("Long term for link %#x found in the cache", key)
            self.hits += 1
            return entry.long_term
        if entry is None:
            logger.debug("Long term for link %#x not found", key)
        else:
            logger.debug("Long term for link %#x outdated", key)
        self.misses += 1
        entry = LongTerm(
            long_term=_frozen_copy(self._compute(channel, s_w, u_w)),
            channel_generation=channel.generation,
            s_w=_frozen_copy(s_w),
            u_w=_frozen_copy(u_w),
        )
        self._entries[key] = entry
        return entry.long_term

    def prune(self, active_keys: Iterable[int]) -> int:
        """Drop entries of links no longer active; return how many."""
        active = set(active_keys)
        stale = [k for k in self._entries if k not in active]
        for k in stale:
            del self._entries[k]
        if stale:
            logger.debug("Pruned %d long-term entries", len(stale))
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()


# ============================================================================
#  Doppler and beamforming gain
# ============================================================================

def calc_doppler_phase(channel: ChannelMatrix, params: ChannelParams,
                       s_speed: np.ndarray, u_speed: np.ndarray,
                       frequency_hz: float, t_s: float) -> np.ndarray:
    """
    Doppler term of every cluster at time t_s.

    Only the centre angle of each cluster is considered. The phase is

        2π·f·t/c · ( v_u · r_rx(ZOA, AOA) + v_s · r_tx(ZOD, AOD) + 2·α·D )

    Returns
    -------
    doppler : (n_clusters,) complex unit-modulus vector
    """
    n = channel.num_clusters
    if params.num_clusters < n:
        raise ValueError(
            f"Channel params cover {params.num_clusters} of {n} clusters")
    factor = 2 * np.pi * t_s * frequency_hz / SPEED_OF_LIGHT
    ang = channel.angles_rad
    aoa, zoa = ang[AOA_INDEX], ang[ZOA_INDEX]
    aod, zod = ang[AOD_INDEX], ang[ZOD_INDEX]
    r_rx = np.stack([np.sin(zoa) * np.cos(aoa),
                     np.sin(zoa) * np.sin(aoa),
                     np.cos(zoa)])
    r_tx = np.stack([np.sin(zod) * np.cos(aod),
                     np.sin(zod) * np.sin(aod),
                     np.cos(zod)])
    u_speed = np.asarray(u_speed, dtype=float)
    s_speed = np.asarray(s_speed, dtype=float)
    phase = factor * (u_speed @ r_rx + s_speed @ r_tx
                      + 2 * params.alpha[:n] * params.d_scatter[:n])
    return np.exp(1j * phase)


def calc_beamforming_gain(tx_psd: SpectrumValue, long_term: np.ndarray,
                          channel: ChannelMatrix, params: ChannelParams,
                          s_speed: np.ndarray, u_speed: np.ndarray,
                          frequency_hz: float, t_s: float,
                          normalization: float = 1.0) -> SpectrumValue:
    """
    Apply fast fading and beamforming gain to a tx PSD.

    For every band with centre frequency f:

        G(f)     = Σ_n longTerm[n] · doppler[n] · exp(-j·2π·f·τ_n)
        rx_psd   = tx_psd · |G(f)|² / normalization

    Bands with zero power are left untouched; bands are independent.
    Without clusters the rx PSD is identically zero.
    """
    rx_psd = tx_psd.copy()
    n = channel.num_clusters
    if n == 0:
        rx_psd.values[:] = 0.0
        return rx_psd
    long_term = np.asarray(long_term, dtype=np.complex128)
    if long_term.size < n:
        raise ValueError(
            f"Long term has {long_term.size} entries for {n} clusters")

    doppler = calc_doppler_phase(channel, params, s_speed, u_speed,
                                 frequency_hz, t_s)
    weighted = long_term[:n] * doppler

    active = rx_psd.values != 0.0
    fsb = rx_psd.center_freqs_hz[active]
    delay = np.exp(-1j * 2 * np.pi * np.outer(fsb, channel.delays_s))  # (F, n)
    subband_gain = delay @ weighted
    rx_psd.values[active] *= np.abs(subband_gain) ** 2 / normalization
    return rx_psd


# ============================================================================
#  Spectrum propagation loss model
# ============================================================================

class SpectrumPropagationLossModel:
    """
    Received PSD of a link through a matrix-based channel.

    The channel matrix is fetched from the provider on every call; the
    long-term component is recomputed only when the channel realisation or
    one of the beamforming vectors changed. One instance (and therefore one
    cache) must not be shared across threads.
    """

    def __init__(self, channel_model: ChannelMatrixProvider,
                 gain_normalization: float = 1.0):
        if gain_normalization <= 0:
            raise ValueError("gain_normalization must be positive")
        self._channel_model = channel_model
        self.gain_normalization = gain_normalization
        self.long_term_cache = LongTermCache()

    @property
    def channel_model(self) -> ChannelMatrixProvider:
        return self._channel_model

    @channel_model.setter
    def channel_model(self, channel_model: ChannelMatrixProvider) -> None:
        self._channel_model = channel_model

    @property
    def frequency_hz(self) -> float:
        return self._channel_model.frequency_hz

    def calc_rx_psd(self, tx_psd: SpectrumValue, a: Endpoint, b: Endpoint,
                    a_array, b_array, t_s: float = 0.0) -> SpectrumValue:
        """
        Compute the rx PSD of the link between a and b.

        Parameters
        ----------
        tx_psd  : transmitted PSD (left unchanged)
        a, b    : the two endpoints (either may be the transmitter)
        a_array : antenna array of a
        b_array : antenna array of b
        t_s     : current simulation time [s]

        Returns
        -------
        rx_psd : freshly allocated PSD on the same band grid
        """
        if a_array is None:
            raise ValueError(f"Antenna not found for node {a.node_id}")
        if b_array is None:
            raise ValueError(f"Antenna not found for node {b.node_id}")
        if a.node_id == b.node_id:
            raise ValueError(f"Both endpoints are node {a.node_id}")
        if self._channel_model is None:
            raise LookupError("No channel model attached")

        channel = self._channel_model.get_channel(a, b, a_array, b_array, t_s)
        if channel is None:
            raise LookupError(
                f"No channel matrix for nodes ({a.node_id}, {b.node_id})")
        params = self._channel_model.get_params(a, b)
        if params is None:
            raise LookupError(
                f"No channel params for nodes ({a.node_id}, {b.node_id})")
        if params.generation != channel.generation:
            raise LookupError(
                f"Channel params of generation {params.generation} do not "
                f"belong to channel matrix {channel.generation}")

        a_w = a_array.beamforming_vector
        b_w = b_array.beamforming_vector
        # map (a, b) onto the (s, u) roles the matrix was generated with
        if channel.is_reverse(a.node_id, b.node_id):
            s_w, u_w = b_w, a_w
            s_speed, u_speed = b.velocity, a.velocity
        else:
            s_w, u_w = a_w, b_w
            s_speed, u_speed = a.velocity, b.velocity

        key = get_key(a.node_id, b.node_id)
        long_term = self.long_term_cache.get(key, channel, s_w, u_w)

        return calc_beamforming_gain(
            tx_psd, long_term, channel, params, s_speed, u_speed,
            self.frequency_hz, t_s, self.gain_normalization)

    def prune(self, active_pairs: Iterable[Tuple[int, int]]) -> int:
        """Forget the long-term components of links not in active_pairs."""
        return self.long_term_cache.prune(get_key(a, b) for a, b in active_pairs)

    def dispose(self) -> None:
        self.long_term_cache.clear()
        self._channel_model = None
