from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import numpy as np
import pyvista as pv
from pint import UnitRegistry

from orbcloud.config import ConfigError, dump_config, load_config
from orbcloud.engine import SamplingEngine
from orbcloud.quantum import InvalidQuantumStateError, QuantumState

logger = logging.getLogger(__name__)

ureg = UnitRegistry()
Q_ = ureg.Quantity


def length_scale(units: str) -> float:
    """Factor from bohr (atomic units) to the requested output length unit."""
    return float(Q_(1.0, "bohr").to(units).magnitude)


def _point_cloud(positions: np.ndarray, colors: np.ndarray, scale: float, amplitudes: np.ndarray | None = None) -> pv.PolyData:
    cloud = pv.PolyData(np.asarray(positions, dtype=float) * scale)
    cloud.point_data["colors"] = colors
    if amplitudes is not None:
        cloud.point_data["amplitude"] = amplitudes
    return cloud


def _add_state_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-Z", "--atomic-number", type=int, default=1)
    parser.add_argument("-n", type=int, required=True)
    parser.add_argument("-l", type=int, default=0)
    parser.add_argument("-m", type=int, default=0)
    parser.add_argument("--count", type=int, default=20000)
    parser.add_argument("--light", action="store_true", help="Use light-background colors.")
    parser.add_argument("--units", choices=["bohr", "angstrom"], default="bohr")
    parser.add_argument("--seed", type=int, default=None)


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=Path, default=None, help="YAML file merged over the packaged defaults.")
    common.add_argument("-v", "--verbose", action="store_true")

    parser = argparse.ArgumentParser(prog="orbcloud", description="Sample hydrogen-like orbital point clouds.")
    commands = parser.add_subparsers(dest="command", required=True)

    sample = commands.add_parser("sample", parents=[common], help="Write an atomic orbital point cloud.")
    _add_state_arguments(sample)
    sample.add_argument("--out", type=Path, required=True)
    sample.add_argument("--isosurface", type=Path, default=None)

    molecular = commands.add_parser("molecular", parents=[common], help="Write a two-center sigma / sigma* point cloud.")
    _add_state_arguments(molecular)
    molecular.add_argument("--bond-length", type=float, default=1.4)
    molecular.add_argument("--type", dest="orbital_type", choices=["sigma", "sigma*"], default="sigma")
    molecular.add_argument("--out", type=Path, required=True)

    commands.add_parser("config", parents=[common], help="Print the effective configuration.")
    return parser


def _run_sample(engine: SamplingEngine, args: argparse.Namespace) -> int:
    state = QuantumState(args.n, args.l, args.m, atomic_number=args.atomic_number).validate()
    result = engine.sample(state, args.count, is_dark=not args.light)
    scale = length_scale(args.units)
    _point_cloud(result.positions, result.colors, scale).save(args.out)
    logger.info("Wrote %d points for %s to %s", len(result.positions), state.label(), args.out)
    if args.isosurface is not None:
        surface = engine.density.isosurface(state, result.extent, result.max_probability)
        surface.points = surface.points * scale
        surface.save(args.isosurface)
        logger.info("Wrote isosurface with %d points to %s", surface.n_points, args.isosurface)
    print(f"{state.label()}: extent {result.extent * scale:.4g} {args.units}, max density {result.max_probability:.4g}")
    return 0


def _run_molecular(engine: SamplingEngine, args: argparse.Namespace) -> int:
    state = QuantumState(args.n, args.l, args.m, atomic_number=args.atomic_number).validate()
    sample = engine.sample_molecular(state, args.bond_length, args.orbital_type, args.count, is_dark=not args.light)
    scale = length_scale(args.units)
    _point_cloud(sample.positions, sample.colors, scale, sample.amplitudes).save(args.out)
    meta = sample.metadata
    print(f"{meta.orbital_type} R={meta.bond_length:.3f}: overlap {meta.overlap:.4f}, normalization {meta.normalization:.4f}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_config(args.config)
    except (ConfigError, OSError) as exc:
        print(f"Error loading configuration: {exc}", file=sys.stderr)
        return 2
    if args.command == "config":
        print(dump_config(config), end="")
        return 0

    engine = SamplingEngine(config=config, rng=np.random.default_rng(args.seed))
    try:
        if args.command == "sample":
            return _run_sample(engine, args)
        return _run_molecular(engine, args)
    except InvalidQuantumStateError as exc:
        print(f"Invalid quantum state: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
