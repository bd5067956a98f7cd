# -*-coding:utf-8-*-

# """
# Copyright 2017- LabTerra

#     This program is free software: you can redistribute it and/or modify
#     it under the terms of the GNU General Public License as published by
#     the Free Software Foundation, either version 3 of the License, or
#     (at your option) any later version.

#     This program is distributed in the hope that it will be useful,
#     but WITHOUT ANY WARRANTY; without even the implied warranty of
#     MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#     GNU General Public License for more details.

#     You should have received a copy of the GNU General Public License
#     along with this program.  If not, see <http://www.gnu.org/licenses/>.
# """


"""
Jit compiled comparison kernels
These functions are JIT compiled and cached by numba.
If you change any of the cached functions, you should delete the cache
folder in the src folder, generally named __pycache__. This will force numba
to recompile the functions and cache them again.

All kernels skip rows containing a NaN and return NaN when nothing is left
to compute on."""

from typing import Tuple
import numpy as np
import numba
from numpy.typing import NDArray


@numba.jit(nopython=True, cache=True)
def seasonal_concentration_phase(values: NDArray[np.float64]) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Seasonal concentration and phase of monthly series.

    Each row holds the 12 monthly values (January first) of one gridcell. Every
    month is a vector of length value pointing at angle 2*pi*(m-1)/12; the
    concentration is the length of the resultant divided by the annual total
    (0 = flat year, 1 = everything in one month) and the phase is the angle of
    the resultant in (-pi, pi] (0 = January).
    Args:
        values (NDArray[np.float64]): (n, 12) monthly values.
    Returns:
        Tuple of (concentration, phase) arrays of length n."""
    n = values.shape[0]
    nmonths = values.shape[1]
    conc = np.full(n, np.nan)
    phase = np.full(n, np.nan)
    for i in range(n):
        total = 0.0
        lx = 0.0
        ly = 0.0
        valid = True
        for m in range(nmonths):
            v = values[i, m]
            if np.isnan(v):
                valid = False
                break
            theta = 2.0 * np.pi * m / nmonths
            total += v
            lx += v * np.cos(theta)
            ly += v * np.sin(theta)
        if valid and total != 0.0:
            conc[i] = np.sqrt(lx ** 2 + ly ** 2) / total
            phase[i] = np.arctan2(ly, lx)
    return conc, phase


@numba.jit(numba.float64(numba.float64[:], numba.float64[:]), nopython=True, cache=True)
def mean_phase_difference(phase1: NDArray[np.float64], phase2: NDArray[np.float64]) -> float:
    """Mean phase difference, 0 (in phase) to 1 (half a year apart)."""
    total = 0.0
    count = 0
    for i in range(phase1.size):
        if np.isnan(phase1[i]) or np.isnan(phase2[i]):
            continue
        # clip against round-off outside [-1, 1]
        c = min(1.0, max(-1.0, np.cos(phase1[i] - phase2[i])))
        total += np.arccos(c)
        count += 1
    if count == 0:
        return np.nan
    return total / count / np.pi


@numba.jit(numba.float64(numba.float64[:, :], numba.float64[:, :]), nopython=True, cache=True)
def manhattan_metric(x: NDArray[np.float64], y: NDArray[np.float64]) -> float:
    """Mean over rows of the summed absolute differences between proportions."""
    total = 0.0
    count = 0
    for i in range(x.shape[0]):
        row = 0.0
        valid = True
        for j in range(x.shape[1]):
            if np.isnan(x[i, j]) or np.isnan(y[i, j]):
                valid = False
                break
            row += abs(x[i, j] - y[i, j])
        if valid:
            total += row
            count += 1
    if count == 0:
        return np.nan
    return total / count


@numba.jit(numba.float64(numba.float64[:, :], numba.float64[:, :]), nopython=True, cache=True)
def squared_chord_distance(x: NDArray[np.float64], y: NDArray[np.float64]) -> float:
    """Mean over rows of the squared chord distance between proportions."""
    total = 0.0
    count = 0
    for i in range(x.shape[0]):
        row = 0.0
        valid = True
        for j in range(x.shape[1]):
            if np.isnan(x[i, j]) or np.isnan(y[i, j]):
                valid = False
                break
            row += (np.sqrt(x[i, j]) - np.sqrt(y[i, j])) ** 2
        if valid:
            total += row
            count += 1
    if count == 0:
        return np.nan
    return total / count


@numba.jit(numba.float64(numba.float64[:, :]), nopython=True, cache=True)
def cohens_kappa(confusion: NDArray[np.float64]) -> float:
    """Cohen's kappa of a square confusion matrix (counts).

    If chance agreement is already perfect (a single class on both sides) the
    kappa is 1 for complete agreement and NaN otherwise."""
    n = confusion.sum()
    if n == 0:
        return np.nan
    k = confusion.shape[0]
    p_obs = 0.0
    p_exp = 0.0
    for i in range(k):
        p_obs += confusion[i, i] / n
        p_exp += (confusion[i, :].sum() / n) * (confusion[:, i].sum() / n)
    if p_exp >= 1.0:
        return 1.0 if p_obs >= 1.0 else np.nan
    return (p_obs - p_exp) / (1.0 - p_exp)


@numba.jit(numba.float64[:](numba.float64[:, :]), nopython=True, cache=True)
def per_class_kappa(confusion: NDArray[np.float64]) -> NDArray[np.float64]:
    """Kappa for each class (Monserud and Leemans 1992)."""
    n = confusion.sum()
    k = confusion.shape[0]
    out = np.full(k, np.nan)
    if n == 0:
        return out
    for i in range(k):
        p_ii = confusion[i, i] / n
        p_row = confusion[i, :].sum() / n
        p_col = confusion[:, i].sum() / n
        denom = (p_row + p_col) / 2.0 - p_row * p_col
        if denom > 0.0:
            out[i] = (p_ii - p_row * p_col) / denom
    return out


if __name__ == "__main__":
    # Test functions
    import unittest
    from pathlib import Path
    import sys

    # In the first pass all functions are compiled and cached if necessary.
    # If this runs, then the functions are correctly compiled and cached.
    print("Testing comparison JIT compiled functions...")

    # To force recompilation of the functions, delete the __pycache__ folder.
    pycache_path = Path(__file__).parent / "__pycache__"
    if pycache_path.exists() and pycache_path.is_dir():
        import shutil
        try:
            shutil.rmtree(pycache_path)
        except OSError:
            print("Could not remove __pycache__ - continuing (files might be locked)", file=sys.stdout)
    print("0 - OK ... ", file=sys.stdout)

    class TestCompareJit(unittest.TestCase):

        def test_concentration_single_month(self):
            values = np.zeros((1, 12), dtype=np.float64)
            values[0, 0] = 5.0
            conc, phase = seasonal_concentration_phase(values)
            self.assertAlmostEqual(conc[0], 1.0)
            self.assertAlmostEqual(phase[0], 0.0)

        def test_concentration_flat_year(self):
            values = np.ones((2, 12), dtype=np.float64)
            conc, phase = seasonal_concentration_phase(values)
            np.testing.assert_allclose(conc, [0.0, 0.0], atol=1e-12)

        def test_concentration_missing_and_zero(self):
            values = np.ones((2, 12), dtype=np.float64)
            values[0, 3] = np.nan
            values[1, :] = 0.0
            conc, phase = seasonal_concentration_phase(values)
            self.assertTrue(np.isnan(conc[0]))
            self.assertTrue(np.isnan(phase[1]))

        def test_phase_july(self):
            values = np.zeros((1, 12), dtype=np.float64)
            values[0, 6] = 1.0
            conc, phase = seasonal_concentration_phase(values)
            self.assertAlmostEqual(abs(phase[0]), np.pi)

        def test_mean_phase_difference(self):
            p1 = np.array([0.0, 0.0, np.nan], dtype=np.float64)
            p2 = np.array([0.0, np.pi, 1.0], dtype=np.float64)
            # (0 + 1) / 2 valid pairs
            self.assertAlmostEqual(mean_phase_difference(p1, p2), 0.5)
            self.assertTrue(np.isnan(mean_phase_difference(p1[2:], p2[2:])))

        def test_manhattan_metric(self):
            x = np.array([[0.5, 0.5], [1.0, 0.0]], dtype=np.float64)
            y = np.array([[0.5, 0.5], [0.0, 1.0]], dtype=np.float64)
            # row sums 0 and 2 -> mean 1
            self.assertAlmostEqual(manhattan_metric(x, y), 1.0)
            self.assertAlmostEqual(manhattan_metric(x, x), 0.0)

        def test_squared_chord_distance(self):
            x = np.array([[1.0, 0.0]], dtype=np.float64)
            y = np.array([[0.0, 1.0]], dtype=np.float64)
            self.assertAlmostEqual(squared_chord_distance(x, y), 2.0)
            z = np.array([[np.nan, 1.0]], dtype=np.float64)
            self.assertTrue(np.isnan(squared_chord_distance(x, z)))

        def test_cohens_kappa(self):
            perfect = np.array([[3.0, 0.0], [0.0, 2.0]])
            self.assertAlmostEqual(cohens_kappa(perfect), 1.0)
            # forest/forest and grass/forest: p_obs = 0.5, p_exp = 0.5
            half = np.array([[1.0, 0.0], [1.0, 0.0]])
            self.assertAlmostEqual(cohens_kappa(half), 0.0)
            single = np.array([[4.0]])
            self.assertEqual(cohens_kappa(single), 1.0)

        def test_per_class_kappa(self):
            perfect = np.array([[3.0, 0.0], [0.0, 2.0]])
            np.testing.assert_allclose(per_class_kappa(perfect), [1.0, 1.0])

    unittest.main()
