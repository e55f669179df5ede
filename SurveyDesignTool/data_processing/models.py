"""
Core data models and structures for survey design analysis.

This module defines the fundamental data structures used throughout the
tool: variable metadata, recoding rules, the variance-method descriptors
that make up a survey design, and result containers for weighted
crosstabs, chi-square tests and generalized linear models.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union, Tuple, Any
from enum import Enum
import pandas as pd
import numpy as np

from ..exceptions import ConfigError


class VariableType(Enum):
    """Enumeration of variable measurement levels."""
    NOMINAL = "nominal"
    ORDINAL = "ordinal"
    INTERVAL = "interval"
    RATIO = "ratio"
    BINARY = "binary"


class TestType(Enum):
    """Enumeration of design-based chi-square statistics."""
    RAO_SCOTT_F = "F"
    RAO_SCOTT_CHISQ = "Chisq"


class GLMFamily(Enum):
    """Supported GLM families and their link functions."""
    QUASIBINOMIAL = "quasibinomial"
    GAUSSIAN = "gaussian"

    @property
    def link(self) -> str:
        return "logit" if self is GLMFamily.QUASIBINOMIAL else "identity"


@dataclass
class VariableDefinition:
    """Definition of a survey variable with metadata and constraints."""
    name: str
    label: str
    type: VariableType
    categories: Optional[Dict[Union[int, float, str], str]] = None
    missing_codes: List[Union[int, float, str]] = field(default_factory=list)
    recoded_from: Optional[str] = None

    def is_categorical(self) -> bool:
        """Check if variable is categorical (nominal, ordinal, or binary)."""
        return self.type in [VariableType.NOMINAL, VariableType.ORDINAL, VariableType.BINARY]


@dataclass
class SurveyMetadata:
    """Container for survey metadata read from the source file."""
    survey_id: str
    title: str
    n_records: int
    variables: Dict[str, VariableDefinition] = field(default_factory=dict)
    source_path: Optional[str] = None
    file_encoding: Optional[str] = None
    weights_variable: Optional[str] = None
    strata_variable: Optional[str] = None
    cluster_variable: Optional[str] = None

    def add_variable(self, variable: VariableDefinition) -> None:
        """Add a variable definition to the survey metadata."""
        self.variables[variable.name] = variable

    def get_variable(self, name: str) -> Optional[VariableDefinition]:
        """Retrieve a variable definition by name."""
        return self.variables.get(name)

    def value_labels(self, name: str) -> Dict:
        variable = self.variables.get(name)
        if variable is None or not variable.categories:
            return {}
        return dict(variable.categories)


@dataclass(frozen=True)
class RecodeRule:
    """
    Mapping of raw integer codes in ``source_column`` onto a finite label set.

    The ``reference_label`` becomes the first category of the derived
    column, so it acts as the baseline level in treatment-coded models.
    """
    source_column: str
    target_column: str
    mapping: Dict[Any, str]
    reference_label: str
    ordered: bool = False

    @property
    def labels(self) -> List[str]:
        """Distinct labels in mapping order with the reference first."""
        labels = []
        for label in self.mapping.values():
            if label not in labels:
                labels.append(label)
        if self.reference_label in labels:
            labels.remove(self.reference_label)
            labels.insert(0, self.reference_label)
        return labels


@dataclass(frozen=True)
class ReplicateWeights:
    """Replicate-weight variance method (jackknife family)."""
    weight: str
    replicate_weights: Tuple[str, ...]
    type: str = "JKn"
    scale: float = 1.0
    rscales: Optional[Tuple[float, ...]] = None
    mse: bool = True

    def __post_init__(self):
        object.__setattr__(self, 'replicate_weights', tuple(self.replicate_weights))
        if self.rscales is not None:
            object.__setattr__(self, 'rscales', tuple(float(r) for r in self.rscales))

    @property
    def n_replicates(self) -> int:
        return len(self.replicate_weights)

    def effective_rscales(self) -> np.ndarray:
        if self.rscales is None:
            return np.ones(self.n_replicates)
        return np.asarray(self.rscales, dtype=float)

    @property
    def columns(self) -> List[str]:
        return [self.weight] + list(self.replicate_weights)


@dataclass(frozen=True)
class Linearization:
    """Taylor-series linearization variance method (cluster/stratum design)."""
    cluster_id: str
    stratum_id: Optional[str]
    weight: str
    nested: bool = False
    lonely_psu: str = "fail"

    @property
    def columns(self) -> List[str]:
        columns = [self.weight, self.cluster_id]
        if self.stratum_id is not None:
            columns.append(self.stratum_id)
        return columns


VarianceMethod = Union[ReplicateWeights, Linearization]


@dataclass(frozen=True)
class MergeSource:
    """
    Weight layout of one survey cycle taking part in a merge.

    ``scale`` is the cycle's own jackknife multiplier; None means
    ``(R - 1) / R`` over its replicate count.
    """
    label: str
    weight: str
    replicate_weights: Tuple[str, ...]
    scale: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, 'replicate_weights', tuple(self.replicate_weights))

    @property
    def replicate_scale(self) -> float:
        if self.scale is not None:
            return float(self.scale)
        count = len(self.replicate_weights)
        return (count - 1) / count


@dataclass
class CrosstabResult:
    """Container for a design-based weighted cross-tabulation."""
    group_columns: List[str]
    table: pd.DataFrame
    variance_method: str
    confidence_level: float = 0.95
    n_observations: int = 0
    design_df: Optional[int] = None
    filters: List[str] = field(default_factory=list)

    def proportions(self) -> pd.Series:
        """Weighted proportions indexed by group keys."""
        return self.table.set_index(self.group_columns)['proportion']

    def totals(self) -> pd.Series:
        """Weighted totals indexed by group keys."""
        return self.table.set_index(self.group_columns)['total']

    def to_frame(self) -> pd.DataFrame:
        return self.table.copy()

    def summary(self) -> str:
        header = f"Weighted crosstab by {', '.join(self.group_columns)} ({self.variance_method})"
        return header + "\n" + self.table.to_string(index=False)


@dataclass
class ChiSquareResult:
    """Container for a design-based (Rao-Scott) chi-square test."""
    test_type: TestType
    row_variable: str
    column_variable: str
    statistic: float
    p_value: float
    degrees_of_freedom: Tuple[float, ...]
    pearson_statistic: float
    design_effect: float
    contingency_table: pd.DataFrame
    n_observations: int
    warnings: List[str] = field(default_factory=list)

    def is_significant(self, alpha: float = 0.05) -> bool:
        """Check if test result is statistically significant."""
        return self.p_value < alpha

    def summary(self) -> str:
        if self.test_type is TestType.RAO_SCOTT_F:
            ndf, ddf = self.degrees_of_freedom
            stat = f"F = {self.statistic:.4f}, ndf = {ndf:.4f}, ddf = {ddf:.2f}"
        else:
            stat = f"X-squared = {self.statistic:.4f}, df = {self.degrees_of_freedom[0]:g}"
        return (
            f"Pearson's X^2: Rao & Scott adjustment\n"
            f"data: ~{self.row_variable} + {self.column_variable}\n"
            f"{stat}, p-value = {self.p_value:.4g}"
        )


@dataclass
class GLMResult:
    """Container for a design-based weighted GLM fit."""
    formula: str
    family: GLMFamily
    coefficients: pd.Series
    covariance: pd.DataFrame
    residual_df: Optional[float]
    n_observations: int
    variance_method: str
    dispersion: float = 1.0
    iterations: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def standard_errors(self) -> pd.Series:
        return pd.Series(np.sqrt(np.diag(self.covariance.values)),
                         index=self.coefficients.index)

    def critical_value(self, level: float = 0.95) -> float:
        from scipy import stats
        if not 0 < level < 1:
            raise ConfigError(f"Confidence level must be in (0, 1), got {level}")
        tail = (1 + level) / 2
        if self.residual_df is None or self.residual_df <= 0:
            return float(stats.norm.ppf(tail))
        return float(stats.t.ppf(tail, self.residual_df))

    def coefficient_table(self) -> pd.DataFrame:
        """Estimate, standard error, test statistic and p-value per term."""
        from scipy import stats
        se = self.standard_errors
        with np.errstate(divide='ignore', invalid='ignore'):
            tvalues = self.coefficients / se
        if self.residual_df is None or self.residual_df <= 0:
            pvalues = 2 * stats.norm.sf(np.abs(tvalues))
        else:
            pvalues = 2 * stats.t.sf(np.abs(tvalues), self.residual_df)
        return pd.DataFrame({
            'estimate': self.coefficients,
            'std_error': se,
            't_value': tvalues,
            'p_value': pvalues
        })

    def confint(self, level: float = 0.95) -> pd.DataFrame:
        """Wald confidence intervals on the link scale."""
        q = self.critical_value(level)
        se = self.standard_errors
        return pd.DataFrame({
            'lower': self.coefficients - q * se,
            'upper': self.coefficients + q * se
        })

    def exponentiate(self, level: float = 0.95) -> pd.DataFrame:
        """
        Exponentiated coefficients with confidence bounds.

        For the logit link these are odds ratios. For the identity link the
        raw coefficient scale is returned unchanged.
        """
        intervals = self.confint(level)
        table = pd.DataFrame({
            'estimate': self.coefficients,
            'lower': intervals['lower'],
            'upper': intervals['upper']
        })
        if self.family is not GLMFamily.QUASIBINOMIAL:
            logging.getLogger(__name__).warning(
                f"Exponentiation requested for {self.family.value} fit; "
                f"returning coefficients on the identity scale"
            )
            return table
        return np.exp(table)

    def summary(self) -> str:
        header = (
            f"Survey-weighted GLM ({self.family.value}, {self.family.link} link, "
            f"{self.variance_method})\n{self.formula}\n"
        )
        return header + self.coefficient_table().to_string()
