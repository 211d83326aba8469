"""
Shared infrastructure for the link-level channel simulations.
=============================================================
Scenario constants, beam steering, link construction and IEEE-style
plotting helpers.
"""

import math
from typing import Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np

from antenna import UniformPlanarArray
from channel import Endpoint, LargeScalePathLoss, PathLossParams, db_to_linear
from channel_model import ChannelModelParams, ClusterChannelModel, ClusterProfile
from spectrum import SpectrumValue
from spectrum_loss import SpectrumPropagationLossModel

# ============================================================================
#  IEEE-style figure formatting
# ============================================================================

def ieee_setup():
    """Configure matplotlib for IEEE paper figures."""
    plt.rcParams.update({
        'font.family': 'serif',
        'font.serif': ['Times New Roman', 'Times', 'DejaVu Serif'],
        'mathtext.fontset': 'stix',
        'font.size': 8,
        'axes.labelsize': 9,
        'xtick.labelsize': 8,
        'ytick.labelsize': 8,
        'legend.fontsize': 7,
        'figure.figsize': (3.5, 2.8),
        'figure.dpi': 150,
        'axes.grid': True,
        'grid.alpha': 0.3,
        'grid.linestyle': '--',
        'lines.linewidth': 1.0,
        'savefig.dpi': 300,
        'savefig.bbox': 'tight',
    })


def save_figure(fig, basename):
    """Save figure in PNG and EPS formats."""
    fig.savefig(f'{basename}.png', dpi=300, bbox_inches='tight', pad_inches=0.02)
    fig.savefig(f'{basename}.eps', format='eps', bbox_inches='tight', pad_inches=0.02)
    plt.close(fig)
    print(f"Saved: {basename}.png, {basename}.eps")


# ============================================================================
#  Module-level constants
# ============================================================================

# ---- SNR trace scenario (two static nodes, LTE band) ----
F_SNR_HZ = 2125.0e6          # EARFCN 2100
N_RB = 100                   # 100 RBs = 18 MHz
TX_POWER_DBM = 49.0
NOISE_FIGURE_DB = 9.0
DISTANCE_M = 10.0
TX_HEIGHT_M = 10.0
RX_HEIGHT_M = 1.6
UPA_ROWS, UPA_COLUMNS = 2, 2
CHANNEL_UPDATE_PERIOD_S = 1e-3
SNR_SCENARIO = "UMa"

# ---- Mobility scenario (rx walking away from a static tx) ----
F_MOBILITY_HZ = 28e9
MOBILITY_TX_POWER_DBM = 10.0
MOBILITY_SCENARIO = "UMi"
MOBILITY_STEP_M = 1.0

# Cluster profile shared by both scenarios
CLUSTER_PROFILE = dict(
    num_clusters=4,
    relative_powers_dB=[0.0, -3.0, -6.0, -9.0],
    delays_ns=[0.0, 100.0, 200.0, 400.0],
    K_factor_dB=10.0,
    angle_spread_deg=10.0,
)


# ============================================================================
#  Beam steering
# ============================================================================

def do_beamforming(this: Endpoint, this_array: UniformPlanarArray,
                   other: Endpoint) -> np.ndarray:
    """
    Point the beam of this_array at the other node (DFT steering).

    The total power is split equally among the elements:
        w_k = exp(-j·2π·(r̂ · loc_k)) / sqrt(N)
    """
    d = other.position - this.position
    dist = np.linalg.norm(d)
    azimuth = math.atan2(d[1], d[0])
    inclination = math.acos(d[2] / dist)
    n = this_array.num_elements
    power = 1.0 / math.sqrt(n)
    w = np.conj(this_array.steering_vector(azimuth, inclination)) * power
    this_array.beamforming_vector = w
    return w


# ============================================================================
#  Link construction
# ============================================================================

def build_link(distance_m: float = DISTANCE_M,
               tx_height_m: float = TX_HEIGHT_M,
               rx_height_m: float = RX_HEIGHT_M,
               rows: int = UPA_ROWS, columns: int = UPA_COLUMNS
               ) -> Tuple[Endpoint, Endpoint, UniformPlanarArray, UniformPlanarArray]:
    """Two nodes, each with a UPA steered at the other."""
    tx = Endpoint(0, position=[0.0, 0.0, tx_height_m])
    rx = Endpoint(1, position=[distance_m, 0.0, rx_height_m])
    tx_array = UniformPlanarArray(num_rows=rows, num_columns=columns)
    rx_array = UniformPlanarArray(num_rows=rows, num_columns=columns)
    do_beamforming(tx, tx_array, rx)
    do_beamforming(rx, rx_array, tx)
    return tx, rx, tx_array, rx_array


def build_spectrum_model(frequency_hz: float,
                         update_period_s: float = CHANNEL_UPDATE_PERIOD_S,
                         rng: Optional[np.random.Generator] = None
                         ) -> SpectrumPropagationLossModel:
    channel_model = ClusterChannelModel(
        ChannelModelParams(frequency_hz=frequency_hz,
                           update_period_s=update_period_s),
        ClusterProfile(**CLUSTER_PROFILE),
        rng=rng,
    )
    return SpectrumPropagationLossModel(channel_model)


def build_path_loss(frequency_hz: float, scenario: str,
                    shadowing_enabled: bool = True) -> LargeScalePathLoss:
    return LargeScalePathLoss(PathLossParams(
        frequency_hz=frequency_hz, scenario=scenario,
        shadowing_enabled=shadowing_enabled))


def apply_gain(psd: SpectrumValue, gain_dB: float) -> SpectrumValue:
    """Scale a PSD by a flat gain in dB."""
    out = psd.copy()
    out.values *= db_to_linear(gain_dB)
    return out
