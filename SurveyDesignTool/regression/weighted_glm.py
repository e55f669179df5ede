"""
Survey-weighted generalized linear models.

Coefficients maximize the weighted (quasi-)likelihood with the design's
primary weight as prior weight. Their covariance comes from the design:

- ReplicateWeights: the model is refitted under every replicate weight
- Linearization: sandwich estimator, with per-respondent estimating-equation
  contributions summed within PSUs and dispersed within strata
"""

import logging
from typing import Dict, List, Optional, Union, Tuple, Any
import pandas as pd
import numpy as np
import statsmodels.api as sm
from statsmodels.tools.sm_exceptions import PerfectSeparationError
from patsy import dmatrices, PatsyError

from ..categorical_analysis.cross_tabulation import domain_mask
from ..data_processing.models import GLMFamily, GLMResult
from ..data_processing.survey_design import SurveyDesign
from ..estimation.variance import design_covariance
from ..exceptions import ConfigError, ConvergenceError


class WeightedGLM:
    """
    Design-based GLM fitting.

    Families:
    - quasibinomial: logit link, binary or proportion outcome, odds ratios
      available through GLMResult.exponentiate
    - gaussian: identity link, linear regression
    """

    def __init__(self, maxiter: int = 100, tol: float = 1e-8):
        """
        Initialize WeightedGLM.

        Parameters
        ----------
        maxiter : int, default 100
            Maximum IRLS iterations per fit
        tol : float, default 1e-8
            Convergence tolerance on the deviance
        """
        self.maxiter = maxiter
        self.tol = tol
        self.logger = logging.getLogger(__name__)

    def fit(self,
            design: SurveyDesign,
            formula: str,
            family: Union[str, GLMFamily] = "quasibinomial",
            filters: Optional[List[str]] = None,
            start_params: Optional[np.ndarray] = None) -> GLMResult:
        """
        Fit ``formula`` to the design's data.

        Parameters
        ----------
        design : SurveyDesign
            Survey design wrapping the data
        formula : str
            Model formula ``outcome ~ predictors``; categorical predictors use
            their first category as reference level
        family : str or GLMFamily, default "quasibinomial"
            "quasibinomial" or "gaussian"
        filters : list of str, optional
            Column names or query expressions restricting the domain
        start_params : array-like, optional
            Starting coefficients for the primary fit

        Returns
        -------
        GLMResult
            Coefficients with design-based covariance
        """
        try:
            family = GLMFamily(family)
        except ValueError:
            raise ConfigError(f"Unknown family '{family}' (expected 'quasibinomial' or 'gaussian')")

        outcome, exog, rows = self._model_matrices(design.data, formula, filters, family)
        sm_family = sm.families.Binomial() if family is GLMFamily.QUASIBINOMIAL else sm.families.Gaussian()

        self.logger.info(
            f"Fitting {family.value} GLM '{formula}' on {len(rows)} rows "
            f"({design.method_name})"
        )

        primary = self._fit_once(outcome, exog, design.weights[rows], sm_family, start_params)
        coefficients = np.asarray(primary.params, dtype=float)

        def statistic(weights: np.ndarray) -> np.ndarray:
            result = self._fit_once(outcome, exog, weights[rows], sm_family, coefficients)
            return np.asarray(result.params, dtype=float)

        def influence(weights: np.ndarray) -> np.ndarray:
            scores = np.zeros((len(design.data), exog.shape[1]))
            scores[rows] = self._estimating_contributions(
                outcome, exog, weights[rows], coefficients, sm_family
            )
            return scores

        covariance = design_covariance(design, statistic, influence, estimate=coefficients)

        names = list(exog.columns)
        n_params = len(names)
        residual_df = design.degrees_of_freedom - n_params + 1

        warnings_list = []
        if residual_df <= 0:
            message = (
                f"{n_params} coefficients exhaust the {design.degrees_of_freedom} design "
                f"degrees of freedom; inference uses the normal reference"
            )
            self.logger.warning(message)
            warnings_list.append(message)

        return GLMResult(
            formula=formula,
            family=family,
            coefficients=pd.Series(coefficients, index=names),
            covariance=pd.DataFrame(covariance, index=names, columns=names),
            residual_df=residual_df,
            n_observations=len(rows),
            variance_method=design.method_name,
            dispersion=float(primary.scale),
            iterations=int(primary.fit_history.get('iteration', 0)),
            warnings=warnings_list
        )

    def _model_matrices(self,
                        data: pd.DataFrame,
                        formula: str,
                        filters: Optional[List[str]],
                        family: GLMFamily) -> Tuple[np.ndarray, pd.DataFrame, np.ndarray]:
        """Build the outcome vector, design matrix and positional rows used."""
        if '~' not in formula:
            raise ConfigError(f"Formula '{formula}' must have the form 'outcome ~ predictors'")

        frame = data.reset_index(drop=True)
        mask = domain_mask(frame, [], filters)

        try:
            endog, exog = dmatrices(formula, frame.loc[mask], return_type='dataframe', NA_action='drop')
        except (PatsyError, KeyError, NameError) as e:
            raise ConfigError(f"Malformed formula '{formula}': {e}") from e

        if len(exog) == 0:
            raise ConfigError(f"No complete rows for formula '{formula}'")

        rows = exog.index.to_numpy()

        if endog.shape[1] == 2 and family is GLMFamily.QUASIBINOMIAL:
            # Two-level factor outcome: first level is failure.
            outcome = 1.0 - endog.iloc[:, 0].to_numpy(dtype=float)
        elif endog.shape[1] == 1:
            outcome = endog.iloc[:, 0].to_numpy(dtype=float)
        else:
            raise ConfigError(
                f"Outcome of '{formula}' expands to {endog.shape[1]} columns; "
                f"recode it to a binary or numeric variable"
            )

        if family is GLMFamily.QUASIBINOMIAL and ((outcome < 0) | (outcome > 1)).any():
            raise ConfigError("Quasibinomial outcome must lie in [0, 1]")

        return outcome, exog, rows

    def _fit_once(self, outcome, exog, weights, sm_family, start_params):
        keep = weights > 0
        try:
            model = sm.GLM(outcome[keep], exog.loc[keep], family=sm_family, var_weights=weights[keep])
            result = model.fit(
                start_params=start_params,
                maxiter=self.maxiter,
                tol=self.tol,
                scale='X2'
            )
        except (PerfectSeparationError, np.linalg.LinAlgError) as e:
            raise ConvergenceError(f"GLM fit failed: {e}") from e

        iterations = int(result.fit_history.get('iteration', 0))
        if not result.converged or not np.all(np.isfinite(result.params)):
            raise ConvergenceError(
                f"GLM did not converge within {self.maxiter} iterations",
                iterations=iterations
            )
        return result

    def _estimating_contributions(self, outcome, exog, weights, coefficients, sm_family) -> np.ndarray:
        """
        Per-row influence of the coefficients, ``score_i @ inverse(information)``.
        """
        X = exog.to_numpy(dtype=float)
        eta = X @ coefficients
        mu = sm_family.link.inverse(eta)
        dmu_deta = sm_family.link.inverse_deriv(eta)
        variance = sm_family.variance(mu)

        working = weights * dmu_deta ** 2 / variance
        information = X.T @ (X * working[:, None])

        scores = X * (weights * (outcome - mu) * dmu_deta / variance)[:, None]
        return scores @ np.linalg.pinv(information)
