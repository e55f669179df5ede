"""
Survey design construction and validation.

A SurveyDesign pairs a dataset with the variance method its sampling plan
requires: either a set of jackknife replicate weights, or cluster and
stratum identifiers for Taylor-series linearization. Building a design
validates the descriptor against the data and never modifies the data.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import pandas as pd
import numpy as np

from .models import ReplicateWeights, Linearization, VarianceMethod
from ..exceptions import ConfigError

REPLICATE_TYPES = ("JK1", "JKn")
LONELY_PSU_OPTIONS = ("fail", "remove", "adjust")


def replicate_columns(prefix: str, count: int, start: int = 1) -> List[str]:
    """Names of numbered replicate weight columns, e.g. PERSON_FINWT1..PERSON_FINWT50."""
    return [f"{prefix}{i}" for i in range(start, start + count)]


@dataclass(frozen=True, eq=False)
class SurveyDesign:
    """
    Read-only survey design: data plus a validated variance method.

    ``weights`` holds the primary weight, ``replicate_matrix`` the replicate
    weights (replicate designs only) and ``strata``/``psu`` integer codes for
    the stratum and primary sampling unit of each row (linearization only).
    """
    data: pd.DataFrame
    method: VarianceMethod
    weights: np.ndarray
    replicate_matrix: Optional[np.ndarray] = None
    strata: Optional[np.ndarray] = None
    psu: Optional[np.ndarray] = None
    degrees_of_freedom: int = 0
    label: str = ""

    @property
    def n_observations(self) -> int:
        return len(self.data)

    @property
    def is_replicate(self) -> bool:
        return isinstance(self.method, ReplicateWeights)

    @property
    def method_name(self) -> str:
        if isinstance(self.method, ReplicateWeights):
            return f"{self.method.type} replicate weights ({self.method.n_replicates} replicates)"
        return "Taylor series linearization"

    def __repr__(self) -> str:
        return (f"SurveyDesign({self.label or 'unnamed'}: {self.n_observations} rows, "
                f"{self.method_name}, df={self.degrees_of_freedom})")


class SurveyDesignBuilder:
    """
    Builds SurveyDesign objects from a dataset and a variance method.

    Validation performed:
    - all referenced columns exist
    - weights are fully populated and non-negative
    - replicate count matches the rscales length
    - cluster and stratum identifiers are fully populated
    - clusters are nested in strata (or relabelled when ``nested=True``)
    - single-PSU strata handled according to ``lonely_psu``
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def build(self, data: pd.DataFrame, method: VarianceMethod, label: str = "") -> SurveyDesign:
        """
        Validate ``method`` against ``data`` and return a SurveyDesign.

        Parameters
        ----------
        data : pd.DataFrame
            Survey data, one row per respondent
        method : ReplicateWeights or Linearization
            Variance method descriptor
        label : str, optional
            Name used in log messages and reprs

        Returns
        -------
        SurveyDesign
        """
        if isinstance(method, ReplicateWeights):
            design = self._build_replicate(data, method, label)
        elif isinstance(method, Linearization):
            design = self._build_linearization(data, method, label)
        else:
            raise ConfigError(f"Unknown variance method: {type(method).__name__}")

        self.logger.info(f"Built {design!r}")
        return design

    def _build_replicate(self, data: pd.DataFrame, method: ReplicateWeights, label: str) -> SurveyDesign:
        if method.type not in REPLICATE_TYPES:
            raise ConfigError(
                f"Unsupported replicate type '{method.type}' "
                f"(expected one of {', '.join(REPLICATE_TYPES)})"
            )

        if method.n_replicates == 0:
            raise ConfigError("Replicate design needs at least one replicate weight")

        if method.rscales is not None and len(method.rscales) != method.n_replicates:
            raise ConfigError(
                f"{method.n_replicates} replicate weights but {len(method.rscales)} rscales"
            )

        if not method.scale > 0:
            raise ConfigError(f"Replicate scale must be positive, got {method.scale}")

        if len(set(method.replicate_weights)) != method.n_replicates:
            raise ConfigError("Replicate weight columns must be distinct")

        self._check_columns(data, method.columns)

        weights = self._weight_array(data, method.weight)
        replicate_matrix = np.column_stack([
            self._weight_array(data, column) for column in method.replicate_weights
        ])

        rank = int(np.linalg.matrix_rank(replicate_matrix)) if len(data) else 0

        return SurveyDesign(
            data=data,
            method=method,
            weights=weights,
            replicate_matrix=replicate_matrix,
            degrees_of_freedom=max(rank - 1, 0),
            label=label
        )

    def _build_linearization(self, data: pd.DataFrame, method: Linearization, label: str) -> SurveyDesign:
        if method.lonely_psu not in LONELY_PSU_OPTIONS:
            raise ConfigError(
                f"Unknown lonely_psu option '{method.lonely_psu}' "
                f"(expected one of {', '.join(LONELY_PSU_OPTIONS)})"
            )

        self._check_columns(data, method.columns)
        weights = self._weight_array(data, method.weight)

        for column in [method.cluster_id, method.stratum_id]:
            if column is not None and data[column].isna().any():
                raise ConfigError(f"Design column '{column}' has missing values")

        if method.stratum_id is not None:
            strata_values = data[method.stratum_id]
        else:
            strata_values = pd.Series(0, index=data.index)
        clusters = data[method.cluster_id]

        if not method.nested:
            strata_per_cluster = strata_values.groupby(clusters.values).nunique()
            if (strata_per_cluster > 1).any():
                raise ConfigError(
                    "Clusters not nested in strata: "
                    f"{list(strata_per_cluster[strata_per_cluster > 1].index[:5])} "
                    "appear in more than one stratum (use nested=True)"
                )

        strata, _ = pd.factorize(strata_values, sort=True)
        psu = pd.DataFrame({
            'stratum': strata_values.to_numpy(),
            'cluster': clusters.to_numpy()
        }).groupby(['stratum', 'cluster'], sort=True).ngroup().to_numpy()

        psu_per_stratum = pd.Series(psu).groupby(strata).nunique()
        lonely = psu_per_stratum[psu_per_stratum < 2]
        if len(lonely) and method.lonely_psu == "fail":
            raise ConfigError(
                f"{len(lonely)} strata have a single PSU "
                f"(set lonely_psu to 'remove' or 'adjust')"
            )
        if len(lonely):
            self.logger.warning(f"{len(lonely)} single-PSU strata handled with '{method.lonely_psu}'")

        n_psu = int(psu_per_stratum.sum())
        n_strata = int(len(psu_per_stratum))

        return SurveyDesign(
            data=data,
            method=method,
            weights=weights,
            strata=strata,
            psu=psu,
            degrees_of_freedom=max(n_psu - n_strata, 0),
            label=label
        )

    def _check_columns(self, data: pd.DataFrame, columns: List[str]) -> None:
        missing = [column for column in columns if column not in data.columns]
        if missing:
            raise ConfigError(f"Design columns not found in data: {missing}")

    def _weight_array(self, data: pd.DataFrame, column: str) -> np.ndarray:
        values = pd.to_numeric(data[column], errors='coerce')
        if values.isna().any():
            raise ConfigError(
                f"Weight column '{column}' has {int(values.isna().sum())} missing or non-numeric values"
            )
        values = values.to_numpy(dtype=float)
        if (values < 0).any():
            raise ConfigError(f"Weight column '{column}' has negative values")
        return values
