"""
Power Spectral Densities
========================
Per-subcarrier PSD container and helpers to build tx / noise PSDs on a
resource-block grid.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np

from channel import BOLTZMANN, db_to_linear, linear_to_db

RB_BANDWIDTH_HZ = 180e3  # one resource block
T0_K = 290.0             # reference noise temperature [K]


@dataclass(eq=False)
class SpectrumValue:
    """Linear PSD samples [W/Hz] at the centre frequency of each band."""
    center_freqs_hz: np.ndarray
    values: np.ndarray
    band_width_hz: float = RB_BANDWIDTH_HZ

    def __post_init__(self):
        self.center_freqs_hz = np.asarray(self.center_freqs_hz, dtype=float).reshape(-1)
        self.values = np.array(self.values, dtype=float).reshape(-1)
        if self.values.shape != self.center_freqs_hz.shape:
            raise ValueError(
                f"{self.values.size} PSD values for "
                f"{self.center_freqs_hz.size} bands")

    def __len__(self) -> int:
        return self.values.size

    def copy(self) -> "SpectrumValue":
        return SpectrumValue(self.center_freqs_hz.copy(), self.values.copy(),
                             self.band_width_hz)

    def total_power_W(self) -> float:
        return float(np.sum(self.values) * self.band_width_hz)


def rb_center_frequencies(fc_hz: float, n_rb: int,
                          rb_bandwidth_hz: float = RB_BANDWIDTH_HZ) -> np.ndarray:
    """Centre frequencies of n_rb adjacent RBs symmetric around fc_hz."""
    k = np.arange(n_rb)
    return fc_hz - n_rb * rb_bandwidth_hz / 2.0 + (k + 0.5) * rb_bandwidth_hz


def create_tx_psd(fc_hz: float, n_rb: int, tx_power_dBm: float,
                  active_rbs: Optional[Iterable[int]] = None) -> SpectrumValue:
    """
    Tx PSD with the total power spread over the whole channel bandwidth.

    Each active RB carries P_tx / (n_rb · 180 kHz) W/Hz; inactive RBs are 0.
    """
    freqs = rb_center_frequencies(fc_hz, n_rb)
    p_tx_W = 1e-3 * db_to_linear(tx_power_dBm)
    density = p_tx_W / (n_rb * RB_BANDWIDTH_HZ)
    values = np.zeros(n_rb)
    if active_rbs is None:
        values[:] = density
    else:
        values[list(active_rbs)] = density
    return SpectrumValue(freqs, values, RB_BANDWIDTH_HZ)


def create_noise_psd(fc_hz: float, n_rb: int,
                     noise_figure_dB: float) -> SpectrumValue:
    """Thermal noise PSD  N0 = k_B · T0 · NF_linear  on every RB."""
    freqs = rb_center_frequencies(fc_hz, n_rb)
    n0 = BOLTZMANN * T0_K * db_to_linear(noise_figure_dB)
    return SpectrumValue(freqs, np.full(n_rb, n0), RB_BANDWIDTH_HZ)


def average_snr_dB(rx_psd: SpectrumValue, noise_psd: SpectrumValue) -> float:
    return float(linear_to_db(np.sum(rx_psd.values) / np.sum(noise_psd.values)))
