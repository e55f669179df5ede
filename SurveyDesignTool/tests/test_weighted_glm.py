"""
Tests for survey-weighted GLMs.
"""

import unittest
import pandas as pd
import numpy as np
import statsmodels.api as sm

from SurveyDesignTool import hints
from SurveyDesignTool.data_processing.models import GLMFamily, Linearization, ReplicateWeights
from SurveyDesignTool.data_processing.recoder import Recoder
from SurveyDesignTool.data_processing.survey_design import SurveyDesignBuilder
from SurveyDesignTool.exceptions import ConfigError, ConvergenceError
from SurveyDesignTool.regression.weighted_glm import WeightedGLM
from SurveyDesignTool.tests.fixtures import make_hints_frame


class TestWeightedGLM(unittest.TestCase):
    """Test cases for WeightedGLM."""

    def setUp(self):
        """Set up test fixtures."""
        self.glm = WeightedGLM()
        self.builder = SurveyDesignBuilder()
        data = Recoder().recode(make_hints_frame(n=400), hints.RECODE_RULES)
        data['seek'] = (data['SeekCancerInfo'] == 1).astype(float)
        data.loc[data['SeekCancerInfo'] < 0, 'seek'] = np.nan
        self.data = data
        self.replicate = self.builder.build(data, hints.replicate_design())
        self.taylor = self.builder.build(data, hints.linearization_design())

    def test_gaussian_matches_weighted_least_squares(self):
        """Identity-link coefficients solve the weighted normal equations."""
        result = self.glm.fit(self.replicate, 'Age ~ seek', family='gaussian')

        rows = self.data['seek'].notna()
        X = np.column_stack([np.ones(rows.sum()), self.data.loc[rows, 'seek']])
        y = self.data.loc[rows, 'Age'].to_numpy()
        w = self.data.loc[rows, 'PERSON_FINWT0'].to_numpy()
        expected = np.linalg.solve(X.T @ (X * w[:, None]), X.T @ (w * y))

        np.testing.assert_allclose(result.coefficients.to_numpy(), expected, rtol=1e-6)
        self.assertEqual(result.n_observations, int(rows.sum()))
        self.assertEqual(result.family, GLMFamily.GAUSSIAN)

    def test_linearized_gaussian_is_scaled_hc0(self):
        """Unit weights, one respondent per PSU: sandwich equals n/(n-1) HC0."""
        data = self.data[self.data['seek'].notna()].reset_index(drop=True)
        data['PSU'] = np.arange(len(data))
        data['ONE'] = 1.0
        design = self.builder.build(data, Linearization('PSU', None, 'ONE'))
        n = len(data)

        result = self.glm.fit(design, 'Age ~ seek', family='gaussian')
        ols = sm.OLS(data['Age'], sm.add_constant(data['seek'])).fit(cov_type='HC0')

        np.testing.assert_allclose(result.coefficients.to_numpy(), ols.params.to_numpy(), rtol=1e-6)
        np.testing.assert_allclose(result.covariance.to_numpy(),
                                   ols.cov_params().to_numpy() * n / (n - 1), rtol=1e-6)

    def test_logistic_with_categorical_predictors(self):
        """Treatment coding uses the reference label as baseline."""
        for design in [self.replicate, self.taylor]:
            result = self.glm.fit(design, 'seek ~ gender + Age', family='quasibinomial')

            self.assertEqual(list(result.coefficients.index),
                             ['Intercept', 'gender[T.Female]', 'Age'])
            self.assertTrue(np.all(result.standard_errors > 0))
            self.assertGreater(result.coefficients['gender[T.Female]'], 0)

    def test_logistic_point_estimates(self):
        """Point estimates equal a weighted binomial fit with the primary weight."""
        result = self.glm.fit(self.replicate, 'seek ~ Age')

        rows = self.data['seek'].notna()
        expected = sm.GLM(
            self.data.loc[rows, 'seek'].to_numpy(),
            sm.add_constant(self.data.loc[rows, 'Age'].to_numpy()),
            family=sm.families.Binomial(),
            freq_weights=self.data.loc[rows, 'PERSON_FINWT0'].to_numpy()
        ).fit()

        np.testing.assert_allclose(result.coefficients.to_numpy(), expected.params, rtol=1e-5)

    def test_factor_outcome(self):
        """A two-level factor outcome models the non-reference level."""
        factor = self.glm.fit(self.replicate, 'seekcancerinfo ~ gender')
        numeric = self.glm.fit(self.replicate, 'seek ~ gender')

        np.testing.assert_allclose(factor.coefficients.to_numpy(),
                                   numeric.coefficients.to_numpy(), rtol=1e-6)

    def test_exponentiate(self):
        """Odds ratios are exponentiated coefficients and interval bounds."""
        result = self.glm.fit(self.replicate, 'seek ~ gender + Age')
        odds = result.exponentiate(level=0.95)
        intervals = result.confint(level=0.95)

        np.testing.assert_allclose(odds['estimate'], np.exp(result.coefficients))
        np.testing.assert_allclose(odds['lower'], np.exp(intervals['lower']))
        self.assertTrue((odds['lower'] < odds['estimate']).all())
        self.assertTrue((odds['estimate'] < odds['upper']).all())

        narrow = result.exponentiate(level=0.5)
        self.assertTrue((narrow['upper'] - narrow['lower'] < odds['upper'] - odds['lower']).all())

    def test_exponentiate_gaussian_passes_through(self):
        """Identity-link fits return raw coefficients with a warning."""
        result = self.glm.fit(self.replicate, 'Age ~ gender', family='gaussian')

        with self.assertLogs('SurveyDesignTool.data_processing.models', level='WARNING'):
            table = result.exponentiate()

        np.testing.assert_allclose(table['estimate'], result.coefficients)

    def test_residual_degrees_of_freedom(self):
        """Residual df is the design df minus the extra parameters."""
        result = self.glm.fit(self.replicate, 'seek ~ gender + Age')
        self.assertEqual(result.residual_df, 49 - 3 + 1)

        table = result.coefficient_table()
        self.assertEqual(list(table.columns), ['estimate', 'std_error', 't_value', 'p_value'])
        self.assertTrue(((table['p_value'] >= 0) & (table['p_value'] <= 1)).all())

    def test_exhausted_degrees_of_freedom(self):
        """Too few design df fall back to the normal reference with a warning."""
        design = self.builder.build(self.data, ReplicateWeights(
            'PERSON_FINWT0', ('PERSON_FINWT1', 'PERSON_FINWT2'), scale=0.5
        ))
        result = self.glm.fit(design, 'seek ~ gender + Age')

        self.assertEqual(result.residual_df, -1)
        self.assertEqual(len(result.warnings), 1)
        self.assertAlmostEqual(result.critical_value(0.95), 1.959964, places=5)

    def test_filters(self):
        """Filters restrict the rows used in the fit."""
        result = self.glm.fit(self.replicate, 'seek ~ Age', filters=['Age >= 40'])
        expected = (self.data['seek'].notna() & (self.data['Age'] >= 40)).sum()

        self.assertEqual(result.n_observations, int(expected))

    def test_convergence_error(self):
        """An exhausted iteration limit raises ConvergenceError."""
        glm = WeightedGLM(maxiter=1)

        with self.assertRaises(ConvergenceError):
            glm.fit(self.replicate, 'seek ~ gender + Age')

    def test_replicate_refit_convergence_error(self):
        """A replicate that separates the outcome fails its refit with ConvergenceError."""
        glm = WeightedGLM(maxiter=20)
        glm.fit(self.replicate, 'seek ~ gender + Age')

        data = self.data.copy()
        separated = (data['gender'] == 'Female') & (data['seek'] == 0)
        data.loc[separated, 'PERSON_FINWT1'] = 0.0
        design = self.builder.build(data, hints.replicate_design())

        with self.assertRaises(ConvergenceError):
            glm.fit(design, 'seek ~ gender + Age')

    def test_linearized_logistic_matches_cluster_robust(self):
        """One stratum, unit weights: sandwich equals G/(G-1) times the cluster-robust covariance."""
        data = self.data[self.data['seek'].notna() & self.data['gender'].notna()].reset_index(drop=True)
        data['PSU'] = data['VAR_STRATUM'] * 10 + data['VAR_CLUSTER']
        data['ONE'] = 1.0
        design = self.builder.build(data, Linearization('PSU', None, 'ONE'))
        n_clusters = data['PSU'].nunique()

        result = self.glm.fit(design, 'seek ~ gender + Age')

        exog = np.column_stack([
            np.ones(len(data)),
            (data['gender'] == 'Female').to_numpy(dtype=float),
            data['Age'].to_numpy(dtype=float)
        ])
        reference = sm.GLM(data['seek'].to_numpy(), exog, family=sm.families.Binomial()).fit(
            cov_type='cluster',
            cov_kwds={'groups': data['PSU'].to_numpy(dtype=int), 'use_correction': False}
        )

        self.assertEqual(n_clusters, 30)
        np.testing.assert_allclose(result.coefficients.to_numpy(), reference.params, rtol=1e-6)
        np.testing.assert_allclose(result.covariance.to_numpy(),
                                   reference.cov_params() * n_clusters / (n_clusters - 1), rtol=1e-5)

    def test_lonely_psu_adjust(self):
        """Centring a lonely PSU on the grand mean adds variance over removing it."""
        data = self.data.copy()
        data.loc[data['VAR_STRATUM'] == 1, 'VAR_CLUSTER'] = 1
        fits = {}
        for option in ['remove', 'adjust']:
            method = Linearization('VAR_CLUSTER', 'VAR_STRATUM', 'PERSON_FINWT0',
                                   nested=True, lonely_psu=option)
            design = self.builder.build(data, method)
            self.assertEqual(design.degrees_of_freedom, 28 - 10)
            fits[option] = self.glm.fit(design, 'seek ~ gender + Age')

        np.testing.assert_allclose(fits['adjust'].coefficients, fits['remove'].coefficients)
        self.assertTrue((fits['adjust'].standard_errors > fits['remove'].standard_errors).all())

    def test_bad_confidence_level(self):
        """Levels outside (0, 1) are configuration errors."""
        result = self.glm.fit(self.replicate, 'seek ~ gender')

        with self.assertRaises(ConfigError):
            result.critical_value(1.5)
        with self.assertRaises(ConfigError):
            result.confint(level=0)

    def test_malformed_models(self):
        """Bad formulas, columns, families and outcomes raise ConfigError."""
        with self.assertRaises(ConfigError):
            self.glm.fit(self.replicate, 'seek gender')
        with self.assertRaises(ConfigError):
            self.glm.fit(self.replicate, 'seek ~ no_such_column')
        with self.assertRaises(ConfigError):
            self.glm.fit(self.replicate, 'seek ~ gender', family='poisson')
        with self.assertRaises(ConfigError):
            self.glm.fit(self.replicate, 'Age ~ gender', family='quasibinomial')
        with self.assertRaises(ConfigError):
            self.glm.fit(self.replicate, 'genhealth ~ gender')

    def test_summary(self):
        """Summary lists the coefficient table."""
        result = self.glm.fit(self.replicate, 'seek ~ gender')
        text = result.summary()

        self.assertIn('quasibinomial', text)
        self.assertIn('gender[T.Female]', text)


if __name__ == '__main__':
    unittest.main()
