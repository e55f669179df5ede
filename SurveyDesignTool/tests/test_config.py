"""
Tests for analysis configuration parsing.
"""

import json
import tempfile
import unittest
from pathlib import Path

from SurveyDesignTool import hints
from SurveyDesignTool.config import (
    AnalysisConfig, load_analysis_config, parse_analysis_config,
    parse_recode_rule, parse_variance_method
)
from SurveyDesignTool.data_processing.models import ReplicateWeights, Linearization
from SurveyDesignTool.exceptions import ConfigError
from SurveyDesignTool.tests.fixtures import HINTS_CONFIG


class TestAnalysisConfig(unittest.TestCase):
    """Test cases for configuration loading."""

    def test_parse_hints_config(self):
        """Parsed descriptors equal the HINTS presets."""
        config = parse_analysis_config(HINTS_CONFIG)

        self.assertEqual(config.missing_codes, hints.MISSING_CODES)
        self.assertEqual(config.recodes[0], hints.GENDER)
        self.assertEqual(config.recodes[1], hints.GENERAL_HEALTH)

        jackknife = config.design('jackknife')
        self.assertIsInstance(jackknife, ReplicateWeights)
        self.assertEqual(jackknife.replicate_weights, hints.replicate_design().replicate_weights)
        self.assertAlmostEqual(jackknife.scale, 0.98)
        self.assertEqual(config.design('taylor'), hints.linearization_design())

    def test_load_from_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'analysis.json'
            path.write_text(json.dumps(HINTS_CONFIG), encoding='utf-8')

            config = load_analysis_config(path)

        self.assertEqual(sorted(config.designs), ['jackknife', 'taylor'])

    def test_explicit_replicate_columns(self):
        method = parse_variance_method({
            "type": "replicate", "weight": "W0", "replicate_weights": ["W1", "W2", "W3"],
            "replicate_type": "JK1", "rscales": [1, 1, 1], "mse": False
        })

        self.assertEqual(method.replicate_weights, ("W1", "W2", "W3"))
        self.assertEqual(method.type, "JK1")
        self.assertFalse(method.mse)

    def test_linearization_without_strata(self):
        method = parse_variance_method({"type": "linearization", "weight": "W0", "cluster": "PSU"})

        self.assertIsInstance(method, Linearization)
        self.assertIsNone(method.stratum_id)
        self.assertEqual(method.lonely_psu, 'fail')

    def test_non_numeric_codes_kept(self):
        rule = parse_recode_rule({
            "source_column": "Region", "target_column": "region",
            "mapping": {"NE": "Northeast", "2.5": "Other"}, "reference_label": "Northeast"
        })
        self.assertEqual(rule.mapping, {"NE": "Northeast", 2.5: "Other"})

    def test_invalid_configs(self):
        """Malformed content raises ConfigError."""
        with self.assertRaises(ConfigError):
            parse_analysis_config([])
        with self.assertRaises(ConfigError):
            parse_variance_method({"type": "bootstrap", "weight": "W0"})
        with self.assertRaises(ConfigError):
            parse_variance_method({"type": "replicate", "weight": "W0"})
        with self.assertRaises(ConfigError):
            parse_variance_method("replicate")
        with self.assertRaises(ConfigError):
            parse_recode_rule({"source_column": "A", "target_column": "a", "mapping": {"1": "x"}})
        with self.assertRaises(ConfigError):
            parse_recode_rule({"source_column": "A", "target_column": "a",
                               "mapping": ["x"], "reference_label": "x"})
        with self.assertRaises(ConfigError):
            AnalysisConfig().design('jackknife')

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'broken.json'
            path.write_text('{"designs": ', encoding='utf-8')
            with self.assertRaises(ConfigError):
                load_analysis_config(path)
            with self.assertRaises(ConfigError):
                load_analysis_config(Path(tmp) / 'absent.json')


if __name__ == '__main__':
    unittest.main()
