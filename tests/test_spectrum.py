import numpy as np
import pytest
from numpy.testing import assert_allclose

from channel import BOLTZMANN
from spectrum import (
    RB_BANDWIDTH_HZ, T0_K, SpectrumValue, average_snr_dB, create_noise_psd,
    create_tx_psd, rb_center_frequencies,
)


def test_rb_grid_is_centred_on_carrier():
    freqs = rb_center_frequencies(2e9, 6)
    assert np.mean(freqs) == pytest.approx(2e9)
    assert_allclose(np.diff(freqs), RB_BANDWIDTH_HZ)


def test_tx_psd_integrates_to_tx_power():
    psd = create_tx_psd(2125e6, 100, 49.0)
    assert len(psd) == 100
    assert psd.total_power_W() == pytest.approx(10 ** 1.9)
    assert np.all(psd.values == psd.values[0])


def test_inactive_rbs_carry_no_power():
    psd = create_tx_psd(28e9, 10, 30.0, active_rbs=[0, 3, 4])
    assert np.count_nonzero(psd.values) == 3
    assert psd.total_power_W() == pytest.approx(1.0 * 3 / 10)


def test_noise_psd():
    noise = create_noise_psd(28e9, 4, 9.0)
    assert_allclose(noise.values, BOLTZMANN * T0_K * 10 ** 0.9)


def test_average_snr():
    rx = SpectrumValue([1.0, 2.0], [2e-3, 2e-3])
    noise = SpectrumValue([1.0, 2.0], [1e-6, 1e-6])
    assert average_snr_dB(rx, noise) == pytest.approx(33.0103, abs=1e-4)


def test_copy_is_independent():
    psd = SpectrumValue([1.0, 2.0], [3.0, 4.0])
    other = psd.copy()
    other.values[0] = 0.0
    assert psd.values[0] == 3.0


def test_mismatched_lengths():
    with pytest.raises(ValueError):
        SpectrumValue([1.0, 2.0, 3.0], [1.0])
