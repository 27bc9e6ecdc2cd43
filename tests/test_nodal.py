from __future__ import annotations

import sys
import unittest
from math import acos, pi, sqrt
from pathlib import Path

import numpy as np

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from orbcloud.physics.distribution import DistributionCache
from orbcloud.physics.nodal import (
    NodalSurfaceCalculator,
    _sign_change_roots,
    legendre_roots,
    nodal_configuration,
    nodal_surface_data,
    radial_node_radii,
)
from orbcloud.quantum import QuantumState


def _plane_normal(rotation: tuple[float, float, float]) -> np.ndarray:
    a, b, c = rotation
    rx = np.array([[1, 0, 0], [0, np.cos(a), -np.sin(a)], [0, np.sin(a), np.cos(a)]])
    ry = np.array([[np.cos(b), 0, np.sin(b)], [0, 1, 0], [-np.sin(b), 0, np.cos(b)]])
    rz = np.array([[np.cos(c), -np.sin(c), 0], [np.sin(c), np.cos(c), 0], [0, 0, 1]])
    return rx @ ry @ rz @ np.array([0.0, 0.0, 1.0])


class NodalConfigurationTests(unittest.TestCase):
    def test_radial_spheres_are_evenly_spaced(self) -> None:
        config = nodal_configuration(QuantumState(3, 0, 0), 12.0)
        self.assertEqual([s.radius for s in config.spheres], [4.0, 8.0])
        self.assertEqual(config.planes, [])
        self.assertEqual(config.cones, [])

    def test_p_orbitals_have_one_plane(self) -> None:
        for m in (-1, 0, 1):
            config = nodal_configuration(QuantumState(2, 1, m), 5.0)
            self.assertEqual(len(config.planes), 1)
            self.assertEqual(config.spheres, [])
        self.assertEqual(nodal_configuration(QuantumState(2, 1, 0), 5.0).planes[0].rotation, (0.0, 0.0, 0.0))

    def test_dz2_has_two_cones(self) -> None:
        config = nodal_configuration(QuantumState(3, 2, 0), 10.0)
        self.assertEqual(len(config.cones), 2)
        self.assertEqual(config.planes, [])
        cone = config.cones[0]
        self.assertAlmostEqual(cone.radius / cone.height, np.tan(acos(1 / sqrt(3))))

    def test_f_and_higher_plane_counts(self) -> None:
        self.assertEqual(len(nodal_configuration(QuantumState(4, 3, 2), 10.0).planes), 3)
        self.assertEqual(len(nodal_configuration(QuantumState(5, 4, 0), 10.0).planes), 4)
        self.assertEqual(len(nodal_configuration(QuantumState(7, 6, 0), 10.0).planes), 4)

    def test_d_and_f_planes_match_azimuthal_nodes(self) -> None:
        for l, m in [(2, 2), (2, -2), (3, 2), (3, -2)]:
            planes = nodal_configuration(QuantumState(4, l, m), 10.0).planes
            vertical = [p for p in planes if abs(_plane_normal(p.rotation)[2]) < 1e-9]
            phis = nodal_surface_data(QuantumState(4, l, m), 10.0).phi_angles
            self.assertEqual(len(vertical), len(phis))
            for plane, phi in zip(vertical, phis):
                normal = _plane_normal(plane.rotation)
                self.assertAlmostEqual(float(normal @ [np.cos(phi), np.sin(phi), 0.0]), 0.0, places=6)
        # d_x2-y2 nodes are the diagonals x = +-y.
        normals = [_plane_normal(p.rotation) for p in nodal_configuration(QuantumState(3, 2, 2), 10.0).planes]
        for normal in normals:
            self.assertAlmostEqual(abs(normal[0]), abs(normal[1]), places=6)

    def test_high_l_fallback_planes_are_distinct(self) -> None:
        planes = nodal_configuration(QuantumState(5, 4, 0), 10.0).planes
        normals = np.array([_plane_normal(p.rotation) for p in planes])
        self.assertEqual(len(np.unique(np.round(normals, 6), axis=0)), len(planes))

    def test_invalid_state_is_empty(self) -> None:
        config = nodal_configuration(QuantumState(1, 1, 0), 5.0)
        self.assertEqual((config.spheres, config.planes, config.cones), ([], [], []))


class NodalSurfaceDataTests(unittest.TestCase):
    def test_2s_has_one_radial_node_at_two_bohr(self) -> None:
        nodes = radial_node_radii(QuantumState(2, 0, 0), 20.0)
        self.assertEqual(len(nodes), 1)
        self.assertAlmostEqual(float(nodes[0]), 2.0, places=2)

    def test_3s_radial_nodes(self) -> None:
        nodes = radial_node_radii(QuantumState(3, 0, 0), 30.0)
        # Roots of 27 - 18r + 2r^2.
        np.testing.assert_allclose(nodes, [(9 - 3 * sqrt(3)) / 2, (9 + 3 * sqrt(3)) / 2], atol=5e-3)

    def test_radial_nodes_scale_with_charge(self) -> None:
        nodes = radial_node_radii(QuantumState(2, 0, 0, atomic_number=2), 10.0)
        self.assertAlmostEqual(float(nodes[0]), 1.0, places=2)

    def test_radial_node_counts(self) -> None:
        calculator = NodalSurfaceCalculator()
        for n in range(1, 5):
            for l in range(n):
                data = calculator.surface_data(QuantumState(n, l, 0), 6.0 * n * n)
                self.assertEqual(len(data.radial_nodes), n - l - 1, f"n={n} l={l}")

    def test_heavy_nucleus_tail_is_not_a_node(self) -> None:
        distributions = DistributionCache()
        for z in (30, 60, 118):
            state = QuantumState(1, 0, 0, atomic_number=z)
            data = nodal_surface_data(state, distributions.get(state).extent)
            self.assertEqual(len(data.radial_nodes), 0, f"Z={z}")
        for n in (2, 3):
            state = QuantumState(n, 0, 0, atomic_number=30)
            data = nodal_surface_data(state, distributions.get(state).extent)
            self.assertEqual(len(data.radial_nodes), n - 1)
        two_s = QuantumState(2, 0, 0, atomic_number=30)
        nodes = nodal_surface_data(two_s, distributions.get(two_s).extent).radial_nodes
        self.assertAlmostEqual(float(nodes[0]), 2 / 30, delta=2e-3)

    def test_zero_sample_between_opposite_signs_is_one_root(self) -> None:
        grid = np.array([-1.0, 0.0, 1.0, 2.0, 3.0])
        values = np.array([-1.0, 0.0, 1.0, 0.0, 0.0])
        self.assertEqual(_sign_change_roots(lambda x: x, grid, values), [0.0])

    def test_legendre_roots(self) -> None:
        self.assertEqual(legendre_roots(0, 0), [])
        np.testing.assert_allclose(legendre_roots(1, 0), [0.0], atol=1e-3)
        self.assertEqual(legendre_roots(1, 1), [])
        np.testing.assert_allclose(legendre_roots(2, 0), [-1 / sqrt(3), 1 / sqrt(3)], atol=1e-3)

    def test_pz_reports_horizontal_plane(self) -> None:
        data = nodal_surface_data(QuantumState(2, 1, 0), 10.0)
        self.assertTrue(data.include_horizontal_plane)
        self.assertEqual(len(data.cone_angles), 0)
        self.assertEqual(len(data.phi_angles), 0)

    def test_dz2_cone_angle(self) -> None:
        data = nodal_surface_data(QuantumState(3, 2, 0), 20.0)
        self.assertFalse(data.include_horizontal_plane)
        np.testing.assert_allclose(data.cone_angles, [acos(1 / sqrt(3))], atol=2e-3)

    def test_azimuthal_planes(self) -> None:
        px = nodal_surface_data(QuantumState(2, 1, 1), 10.0)
        np.testing.assert_allclose(px.phi_angles, [pi / 2], atol=1e-6)
        py = nodal_surface_data(QuantumState(2, 1, -1), 10.0)
        np.testing.assert_allclose(py.phi_angles, [0.0], atol=1e-6)
        dxy = nodal_surface_data(QuantumState(3, 2, -2), 20.0)
        np.testing.assert_allclose(dxy.phi_angles, [0.0, pi / 2], atol=1e-6)

    def test_invalid_state_is_empty(self) -> None:
        data = nodal_surface_data(QuantumState(2, 2, 0), 5.0)
        self.assertEqual(len(data.radial_nodes), 0)
        self.assertFalse(data.include_horizontal_plane)


if __name__ == "__main__":
    unittest.main()
