"""
Design-based variance estimation.

Estimators describe a statistic as a function of the weight vector and, for
linearization, its influence (linearized score) per respondent. The design's
variance method decides which of the two is used:

- ReplicateWeights: recompute the statistic under every replicate weight
  and combine the squared deviations, ``scale * sum_r rscale_r (t_r - t_0)^2``
- Linearization: sum influence scores within primary sampling units and take
  the between-PSU dispersion within strata, ``n_h / (n_h - 1)`` corrected
"""

import logging
from typing import Callable, Optional
import numpy as np

from ..data_processing.models import ReplicateWeights, Linearization
from ..data_processing.survey_design import SurveyDesign
from ..exceptions import ConfigError

logger = logging.getLogger(__name__)

Statistic = Callable[[np.ndarray], np.ndarray]
Influence = Callable[[np.ndarray], np.ndarray]


def design_covariance(design: SurveyDesign,
                      statistic: Statistic,
                      influence: Optional[Influence] = None,
                      estimate: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Covariance matrix of a vector statistic under the design's variance method.

    Parameters
    ----------
    design : SurveyDesign
        Validated survey design
    statistic : callable
        Maps a weight vector (one entry per row of ``design.data``) to a 1-d
        array of estimates
    influence : callable, optional
        Maps the primary weight vector to an (n_rows, k) matrix of linearized
        scores. Required for linearization designs.
    estimate : np.ndarray, optional
        Full-sample estimate, if already computed

    Returns
    -------
    np.ndarray
        (k, k) covariance matrix
    """
    method = design.method

    if isinstance(method, ReplicateWeights):
        if estimate is None:
            estimate = np.atleast_1d(statistic(design.weights))
        replicates = np.vstack([
            np.atleast_1d(statistic(design.replicate_matrix[:, r]))
            for r in range(method.n_replicates)
        ])
        return replicate_covariance(
            estimate, replicates, method.scale, method.effective_rscales(), method.mse
        )

    if isinstance(method, Linearization):
        if influence is None:
            raise ConfigError("Linearization variance requires an influence function")
        scores = np.asarray(influence(design.weights), dtype=float)
        if scores.ndim == 1:
            scores = scores[:, None]
        return linearized_covariance(scores, design.strata, design.psu, method.lonely_psu)

    raise ConfigError(f"Unknown variance method: {type(method).__name__}")


def replicate_covariance(estimate: np.ndarray,
                         replicates: np.ndarray,
                         scale: float,
                         rscales: np.ndarray,
                         mse: bool = True) -> np.ndarray:
    """Jackknife covariance from an (R, k) array of replicate estimates."""
    estimate = np.atleast_1d(np.asarray(estimate, dtype=float))
    replicates = np.asarray(replicates, dtype=float)

    if replicates.shape[0] != len(rscales):
        raise ConfigError(
            f"{replicates.shape[0]} replicate estimates but {len(rscales)} rscales"
        )

    center = estimate if mse else replicates.mean(axis=0)
    deviations = replicates - center
    return scale * (deviations * np.asarray(rscales)[:, None]).T @ deviations


def linearized_covariance(scores: np.ndarray,
                          strata: np.ndarray,
                          psu: np.ndarray,
                          lonely_psu: str = "fail") -> np.ndarray:
    """Stratified between-PSU covariance of summed influence scores."""
    n_psu = int(psu.max()) + 1 if len(psu) else 0
    k = scores.shape[1]

    psu_totals = np.zeros((n_psu, k))
    np.add.at(psu_totals, psu, scores)

    psu_stratum = np.zeros(n_psu, dtype=int)
    psu_stratum[psu] = strata

    grand_mean = psu_totals.mean(axis=0) if n_psu else np.zeros(k)
    covariance = np.zeros((k, k))

    for stratum in np.unique(psu_stratum):
        totals = psu_totals[psu_stratum == stratum]
        n_h = totals.shape[0]

        if n_h > 1:
            deviations = totals - totals.mean(axis=0)
            covariance += n_h / (n_h - 1) * deviations.T @ deviations
        elif lonely_psu == "adjust":
            deviations = totals - grand_mean
            covariance += deviations.T @ deviations
        elif lonely_psu == "fail":
            raise ConfigError(f"Stratum {stratum} has a single PSU")

    return covariance


def standard_errors(covariance: np.ndarray) -> np.ndarray:
    return np.sqrt(np.clip(np.diag(covariance), 0, None))
