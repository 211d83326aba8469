"""
Phased Antenna Arrays
=====================
Uniform planar array (UPA) geometry and beamforming weights.

Element locations are expressed in wavelengths. With zero bearing and
downtilt the array lies in the y-z plane and its boresight is the x axis.
"""

import math

import numpy as np


class UniformPlanarArray:
    """num_rows x num_columns array of isotropic elements."""

    def __init__(self,
                 num_rows: int = 1,
                 num_columns: int = 1,
                 vertical_spacing: float = 0.5,
                 horizontal_spacing: float = 0.5,
                 bearing_rad: float = 0.0,
                 downtilt_rad: float = 0.0):
        if num_rows < 1 or num_columns < 1:
            raise ValueError("The array needs at least one row and one column")
        self.num_rows = int(num_rows)
        self.num_columns = int(num_columns)
        self.vertical_spacing = vertical_spacing
        self.horizontal_spacing = horizontal_spacing
        self.bearing_rad = bearing_rad
        self.downtilt_rad = downtilt_rad
        self._locations = self._compute_locations()
        n = self.num_elements
        self.beamforming_vector = np.full(n, 1.0 / math.sqrt(n), dtype=np.complex128)

    @property
    def num_elements(self) -> int:
        return self.num_rows * self.num_columns

    def _compute_locations(self) -> np.ndarray:
        idx = np.arange(self.num_elements)
        col = (idx % self.num_columns) * self.horizontal_spacing
        row = (idx // self.num_columns) * self.vertical_spacing
        sin_a, cos_a = math.sin(self.bearing_rad), math.cos(self.bearing_rad)
        sin_b, cos_b = math.sin(self.downtilt_rad), math.cos(self.downtilt_rad)
        # local (0, col, row) rotated by downtilt about y, then bearing about z
        x = row * sin_b * cos_a - col * sin_a
        y = row * sin_b * sin_a + col * cos_a
        z = row * cos_b
        locs = np.stack([x, y, z], axis=1)
        locs.setflags(write=False)
        return locs

    def element_location(self, idx: int) -> np.ndarray:
        if not 0 <= idx < self.num_elements:
            raise IndexError(f"Element {idx} out of range [0, {self.num_elements})")
        return self._locations[idx]

    def element_locations(self) -> np.ndarray:
        """(N, 3) element positions in wavelengths."""
        return self._locations

    @property
    def beamforming_vector(self) -> np.ndarray:
        return self._bf

    @beamforming_vector.setter
    def beamforming_vector(self, w) -> None:
        w = np.array(w, dtype=np.complex128, copy=True).reshape(-1)
        if w.size != self.num_elements:
            raise ValueError(
                f"Beamforming vector has {w.size} weights, "
                f"array has {self.num_elements} elements")
        w.setflags(write=False)
        self._bf = w

    def steering_vector(self, azimuth_rad: float, inclination_rad: float) -> np.ndarray:
        """
        Array response towards (azimuth, inclination):

            a_k = exp(j·2π·(sinθ·cosφ·x_k + sinθ·sinφ·y_k + cosθ·z_k))

        Returns
        -------
        a : (N,) complex unit-modulus vector
        """
        direction = np.array([
            math.sin(inclination_rad) * math.cos(azimuth_rad),
            math.sin(inclination_rad) * math.sin(azimuth_rad),
            math.cos(inclination_rad),
        ])
        return np.exp(1j * 2 * np.pi * (self._locations @ direction))
