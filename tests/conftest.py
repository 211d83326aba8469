import numpy as np
import pytest

from antenna import UniformPlanarArray
from channel import ChannelMatrix, ChannelParams, Endpoint


class StaticProvider:
    """Channel-matrix provider returning whatever matrix it was handed."""

    def __init__(self, channel, params, frequency_hz=28e9):
        self.channel = channel
        self.params = params
        self.frequency_hz = frequency_hz
        self.calls = 0

    def get_channel(self, a, b, a_array, b_array, t_s=0.0):
        self.calls += 1
        return self.channel

    def get_params(self, a, b):
        return self.params


def make_channel(h, delays_s=None, angles_rad=None, node_ids=(0, 1)):
    h = np.asarray(h, dtype=complex)
    n = h.shape[0]
    if delays_s is None:
        delays_s = np.zeros(n)
    if angles_rad is None:
        angles_rad = np.zeros((4, n))
    return ChannelMatrix(h_usn=h, delays_s=delays_s, angles_rad=angles_rad,
                         node_ids=node_ids)


def make_params(channel, alpha=None, d_scatter=None):
    n = channel.num_clusters
    return ChannelParams(
        alpha=np.zeros(n) if alpha is None else alpha,
        d_scatter=np.zeros(n) if d_scatter is None else d_scatter,
        node_ids=channel.node_ids,
        generation=channel.generation,
    )


def single_element_array():
    array = UniformPlanarArray(1, 1)
    array.beamforming_vector = [1.0]
    return array


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def node_a():
    return Endpoint(0, position=[0.0, 0.0, 10.0])


@pytest.fixture
def node_b():
    return Endpoint(1, position=[20.0, 0.0, 1.5])


@pytest.fixture
def random_channel(rng):
    """Three clusters between a 2-element s array and a 3-element u array."""
    h = (rng.standard_normal((3, 3, 2))
         + 1j * rng.standard_normal((3, 3, 2))) / np.sqrt(2)
    return make_channel(h, delays_s=[0.0, 50e-9, 120e-9],
                        angles_rad=rng.uniform(0, np.pi, (4, 3)))
