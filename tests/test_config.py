from __future__ import annotations

import sys
import tempfile
import unittest
from pathlib import Path

import yaml

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from orbcloud.config import ConfigError, EngineConfig, config_from_dict, dump_config, load_config


class ConfigTests(unittest.TestCase):
    def test_packaged_defaults_match_dataclass_defaults(self) -> None:
        self.assertEqual(load_config(), EngineConfig())

    def test_overrides(self) -> None:
        config = load_config(flavor="stylized", density={"stylized_cap": 120})
        self.assertEqual(config.flavor, "stylized")
        self.assertEqual(config.density.stylized_cap, 120)
        self.assertEqual(config.density.exact_cap, 180)
        self.assertAlmostEqual(config.extent_scale(), 1.08)
        self.assertAlmostEqual(config.extent_scale("exact"), 1.0)

    def test_user_file_is_merged(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "engine.yaml"
            path.write_text("cache:\n  pool_capacity: 4\n", encoding="utf-8")
            config = load_config(path)
        self.assertEqual(config.cache.pool_capacity, 4)
        self.assertEqual(config.cache.distribution_capacity, 64)

    def test_unknown_key_raises(self) -> None:
        with self.assertRaises(ConfigError):
            load_config(sampling={"bogus": 1})
        with self.assertRaises(ConfigError):
            config_from_dict({"rendering": {}})

    def test_bad_values_raise(self) -> None:
        with self.assertRaises(ConfigError):
            load_config(radial={"max_steps": "many"})
        with self.assertRaises(ConfigError):
            load_config(flavor="fancy")

    def test_malformed_yaml_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "broken.yaml"
            path.write_text("sampling: [unclosed\n", encoding="utf-8")
            with self.assertRaises(ConfigError):
                load_config(path)

    def test_dump_round_trips(self) -> None:
        config = load_config(flavor="stylized")
        self.assertEqual(config_from_dict(yaml.safe_load(dump_config(config))), config)


if __name__ == "__main__":
    unittest.main()
