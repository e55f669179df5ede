"""
Design-based weighted cross-tabulation for survey data.

This module computes weighted counts, totals and proportions for every
combination of one or more grouping variables, with standard errors from
the survey design's variance method. Subpopulations are handled as domains:
rows excluded by a filter or with a missing group value keep their place in
the design with zero contribution, so PSU and replicate structure is kept.
"""

import logging
from typing import Dict, List, Optional, Union, Tuple, Any
import pandas as pd
import numpy as np
from scipy import stats

from ..data_processing.models import CrosstabResult
from ..data_processing.survey_design import SurveyDesign
from ..estimation.variance import design_covariance, standard_errors
from ..exceptions import ConfigError


def domain_mask(data: pd.DataFrame,
                required_columns: List[str],
                filters: Optional[List[str]] = None) -> np.ndarray:
    """
    Boolean mask of rows in the analysis domain.

    A row is in the domain when every required column is non-missing and
    every filter holds. A filter is either a column name (row must be
    non-missing) or a pandas query expression.
    """
    missing = [column for column in required_columns if column not in data.columns]
    if missing:
        raise ConfigError(f"Columns not found in data: {missing}")

    mask = data[required_columns].notna().all(axis=1).to_numpy(dtype=bool, copy=True)

    for expression in filters or []:
        if expression in data.columns:
            mask = mask & data[expression].notna().to_numpy(dtype=bool)
            continue
        try:
            result = data.eval(expression)
        except Exception as e:
            raise ConfigError(f"Invalid filter expression '{expression}': {e}") from e
        if not isinstance(result, pd.Series) or not pd.api.types.is_bool_dtype(result):
            raise ConfigError(f"Filter '{expression}' does not evaluate to a boolean column")
        mask = mask & result.fillna(False).to_numpy(dtype=bool)

    return mask


def group_indicators(keys: pd.DataFrame,
                     group_columns: List[str],
                     mask: np.ndarray,
                     n_rows: int) -> Tuple[np.ndarray, pd.DataFrame, np.ndarray]:
    """
    Indicator matrix of group membership for rows inside ``mask``.

    Returns the (n_rows, n_groups) indicator matrix, a frame of group keys in
    sorted order, and the unweighted count per group.
    """
    grouped = keys.groupby(group_columns, sort=True, observed=True)
    codes = grouped.ngroup().to_numpy()
    sizes = grouped.size()

    indicators = np.zeros((n_rows, len(sizes)))
    indicators[np.flatnonzero(mask), codes] = 1.0

    group_keys = sizes.index.to_frame(index=False)
    group_keys.columns = group_columns
    return indicators, group_keys, sizes.to_numpy()


class CrossTabulation:
    """
    Weighted cross-tabulation on a survey design.

    Features:
    - Weighted totals and proportions for any number of grouping variables
    - Replicate-weight or linearized standard errors
    - Domain (subpopulation) estimation through filters
    - Confidence intervals for proportions using the design degrees of freedom
    """

    def __init__(self, confidence_level: float = 0.95):
        """
        Initialize CrossTabulation analyzer.

        Parameters
        ----------
        confidence_level : float, default 0.95
            Default confidence level for proportion intervals
        """
        self.confidence_level = confidence_level
        self.logger = logging.getLogger(__name__)

    def weighted_crosstab(self,
                          design: SurveyDesign,
                          group_columns: Union[str, List[str]],
                          filters: Optional[List[str]] = None,
                          level: Optional[float] = None) -> CrosstabResult:
        """
        Weighted counts, totals and proportions by group.

        Parameters
        ----------
        design : SurveyDesign
            Survey design wrapping the data
        group_columns : str or list of str
            Variables whose value combinations define the groups
        filters : list of str, optional
            Column names that must be non-missing, or pandas query expressions
        level : float, optional
            Confidence level for proportion intervals

        Returns
        -------
        CrosstabResult
            One row per observed group, sorted by the group keys
        """
        if isinstance(group_columns, str):
            group_columns = [group_columns]
        group_columns = list(group_columns)
        if not group_columns:
            raise ConfigError("At least one group column is required")

        level = self.confidence_level if level is None else level
        data = design.data

        mask = domain_mask(data, group_columns, filters)
        n_domain = int(mask.sum())

        self.logger.info(
            f"Weighted crosstab by {', '.join(group_columns)} "
            f"({n_domain} of {len(data)} rows in domain)"
        )

        if n_domain == 0:
            self.logger.warning("No rows in the analysis domain")
            empty = pd.DataFrame(columns=group_columns + [
                'count', 'total', 'total_se', 'proportion', 'proportion_se',
                'proportion_lower', 'proportion_upper'
            ])
            return CrosstabResult(
                group_columns=group_columns,
                table=empty,
                variance_method=design.method_name,
                confidence_level=level,
                design_df=design.degrees_of_freedom,
                filters=list(filters or [])
            )

        indicators, group_keys, counts = group_indicators(
            data.loc[mask, group_columns], group_columns, mask, len(data)
        )
        in_domain = mask.astype(float)
        n_groups = indicators.shape[1]

        def statistic(weights: np.ndarray) -> np.ndarray:
            totals = weights @ indicators
            return np.concatenate([totals, totals / totals.sum()])

        def influence(weights: np.ndarray) -> np.ndarray:
            totals = weights @ indicators
            grand_total = totals.sum()
            proportions = totals / grand_total
            total_scores = weights[:, None] * indicators
            proportion_scores = weights[:, None] * (
                indicators - in_domain[:, None] * proportions[None, :]
            ) / grand_total
            return np.hstack([total_scores, proportion_scores])

        estimate = statistic(design.weights)
        covariance = design_covariance(design, statistic, influence, estimate=estimate)
        se = standard_errors(covariance)

        totals, proportions = estimate[:n_groups], estimate[n_groups:]
        total_se, proportion_se = se[:n_groups], se[n_groups:]

        q = self._critical_value(level, design.degrees_of_freedom)

        table = group_keys.copy()
        table['count'] = counts.astype(int)
        table['total'] = totals
        table['total_se'] = total_se
        table['proportion'] = proportions
        table['proportion_se'] = proportion_se
        table['proportion_lower'] = proportions - q * proportion_se
        table['proportion_upper'] = proportions + q * proportion_se

        return CrosstabResult(
            group_columns=group_columns,
            table=table,
            variance_method=design.method_name,
            confidence_level=level,
            n_observations=n_domain,
            design_df=design.degrees_of_freedom,
            filters=list(filters or [])
        )

    def two_way_table(self,
                      design: SurveyDesign,
                      row_variable: str,
                      column_variable: str,
                      value: str = 'total',
                      filters: Optional[List[str]] = None) -> pd.DataFrame:
        """
        Pivot a two-variable crosstab into a row x column table.

        ``value`` selects which estimate fills the cells ('count', 'total',
        'proportion' or one of the standard error columns).
        """
        result = self.weighted_crosstab(design, [row_variable, column_variable], filters)
        if value not in result.table.columns:
            raise ConfigError(f"Unknown crosstab value '{value}'")

        return result.table.pivot_table(
            index=row_variable,
            columns=column_variable,
            values=value,
            aggfunc='sum',
            fill_value=0,
            observed=True
        )

    def _critical_value(self, level: float, df: int) -> float:
        if not 0 < level < 1:
            raise ConfigError(f"Confidence level must be in (0, 1), got {level}")
        if df and df > 0:
            return float(stats.t.ppf((1 + level) / 2, df))
        return float(stats.norm.ppf((1 + level) / 2))
