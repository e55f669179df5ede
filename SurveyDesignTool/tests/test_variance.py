"""
Tests for design-based variance estimation.
"""

import unittest
import numpy as np

from SurveyDesignTool import hints
from SurveyDesignTool.data_processing.models import ReplicateWeights
from SurveyDesignTool.data_processing.survey_design import SurveyDesignBuilder
from SurveyDesignTool.estimation.variance import (
    design_covariance, replicate_covariance, linearized_covariance
)
from SurveyDesignTool.exceptions import ConfigError
from SurveyDesignTool.tests.fixtures import make_hints_frame


class TestReplicateCovariance(unittest.TestCase):
    """Test cases for the jackknife formula."""

    def test_formula(self):
        """scale * sum_r rscale_r (t_r - t_0)^2."""
        covariance = replicate_covariance(
            np.array([1.0]), np.array([[2.0], [0.0], [1.5]]), 0.5, np.array([1.0, 1.0, 2.0])
        )
        self.assertAlmostEqual(covariance[0, 0], 0.5 * (1.0 + 1.0 + 2.0 * 0.25))

    def test_centered_on_replicate_mean(self):
        """mse=False centers on the mean of the replicates."""
        covariance = replicate_covariance(
            np.array([10.0]), np.array([[1.0], [3.0]]), 1.0, np.ones(2), mse=False
        )
        self.assertAlmostEqual(covariance[0, 0], 2.0)

    def test_rscales_must_match(self):
        with self.assertRaises(ConfigError):
            replicate_covariance(np.array([1.0]), np.ones((3, 1)), 1.0, np.ones(2))

    def test_invariant_to_replicate_order(self):
        """Permuting replicate columns with their rscales leaves the variance unchanged."""
        data = make_hints_frame(n=150)
        rng = np.random.RandomState(3)
        rscales = rng.uniform(0.5, 1.5, 50)
        columns = [f'PERSON_FINWT{r}' for r in range(1, 51)]
        order = rng.permutation(50)

        builder = SurveyDesignBuilder()
        design = builder.build(data, ReplicateWeights(
            'PERSON_FINWT0', tuple(columns), scale=0.98, rscales=tuple(rscales)
        ))
        permuted = builder.build(data, ReplicateWeights(
            'PERSON_FINWT0', tuple(columns[i] for i in order), scale=0.98,
            rscales=tuple(rscales[order])
        ))

        age = data['Age'].to_numpy()

        def weighted_mean(weights):
            return np.array([weights @ age / weights.sum()])

        np.testing.assert_allclose(
            design_covariance(design, weighted_mean),
            design_covariance(permuted, weighted_mean)
        )


class TestLinearizedCovariance(unittest.TestCase):
    """Test cases for the stratified between-PSU formula."""

    def test_two_psu_stratum(self):
        """With two PSUs the variance is the squared difference of PSU totals."""
        scores = np.array([[1.0], [2.0], [4.0], [10.0]])
        strata = np.array([0, 0, 0, 0])
        psu = np.array([0, 0, 1, 1])

        covariance = linearized_covariance(scores, strata, psu)
        self.assertAlmostEqual(covariance[0, 0], (3.0 - 14.0) ** 2)

    def test_strata_add(self):
        """Stratum contributions are summed."""
        scores = np.array([[1.0], [3.0], [2.0], [2.0], [0.0], [6.0]])
        strata = np.array([0, 0, 1, 1, 1, 1])
        psu = np.array([0, 1, 2, 3, 4, 5])

        covariance = linearized_covariance(scores, strata, psu)
        first = 2 / 1 * ((1 - 2) ** 2 + (3 - 2) ** 2)
        second = 4 / 3 * ((2 - 2.5) ** 2 * 2 + (0 - 2.5) ** 2 + (6 - 2.5) ** 2)
        self.assertAlmostEqual(covariance[0, 0], first + second)

    def test_lonely_psu_handling(self):
        """Single-PSU strata: removed contribute zero, adjust centres on the grand mean."""
        scores = np.array([[1.0], [3.0], [8.0]])
        strata = np.array([0, 0, 1])
        psu = np.array([0, 1, 2])

        removed = linearized_covariance(scores, strata, psu, lonely_psu='remove')
        self.assertAlmostEqual(removed[0, 0], 4.0)

        adjusted = linearized_covariance(scores, strata, psu, lonely_psu='adjust')
        self.assertAlmostEqual(adjusted[0, 0], 4.0 + (8.0 - 4.0) ** 2)

        with self.assertRaises(ConfigError):
            linearized_covariance(scores, strata, psu, lonely_psu='fail')

    def test_requires_influence(self):
        """Linearization designs need an influence function."""
        data = make_hints_frame(n=100)
        design = SurveyDesignBuilder().build(data, hints.linearization_design())

        with self.assertRaises(ConfigError):
            design_covariance(design, lambda w: np.array([w.sum()]))


if __name__ == '__main__':
    unittest.main()
