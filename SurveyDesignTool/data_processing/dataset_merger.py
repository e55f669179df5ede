"""
Harmonisation of two survey cycles into one replicate-weight dataset.

Each cycle carries its own base weight and jackknife replicates. The merged
layout gives every row ``R_A + R_B`` replicate columns: the first cycle's
replicates occupy the first block and its base weight fills the second
block; the second cycle has its base weight in the first block and its
replicates in the second. A single jackknife over the merged columns then
perturbs each cycle only within its own block.

This padding is the pragmatic scheme used for combining HINTS iterations,
not a statistically ideal combined-design estimator, and it is kept exactly
as described.
"""

import logging
from typing import Dict, List, Optional, Tuple
import pandas as pd
import numpy as np

from .models import MergeSource, ReplicateWeights
from .survey_design import replicate_columns
from ..exceptions import ConfigError


class DatasetMerger:
    """
    Stacks two survey cycles with a unified replicate-weight layout.

    Features:
    - Union-by-name row concatenation (columns absent in one cycle are NaN)
    - Provenance column identifying the source cycle
    - Merged base weight and padded replicate weights
    """

    def __init__(self,
                 weight_prefix: str = "Merged_NWGT",
                 source_column: str = "survey"):
        """
        Initialize the DatasetMerger.

        Parameters
        ----------
        weight_prefix : str, default "Merged_NWGT"
            Prefix of the merged weight columns; ``{prefix}0`` is the base
            weight and ``{prefix}1..{prefix}R`` the replicates
        source_column : str, default "survey"
            Name of the provenance column
        """
        self.weight_prefix = weight_prefix
        self.source_column = source_column
        self.logger = logging.getLogger(__name__)

    def merged_weight_column(self) -> str:
        return f"{self.weight_prefix}0"

    def merged_replicate_columns(self, count: int) -> List[str]:
        return replicate_columns(self.weight_prefix, count)

    def merge(self,
              first: pd.DataFrame,
              second: pd.DataFrame,
              first_source: MergeSource,
              second_source: MergeSource) -> pd.DataFrame:
        """
        Merge two cycles into a single dataset.

        Parameters
        ----------
        first, second : pd.DataFrame
            Survey data for each cycle
        first_source, second_source : MergeSource
            Label and weight columns for each cycle

        Returns
        -------
        pd.DataFrame
            ``len(first) + len(second)`` rows with the provenance column,
            ``{prefix}0`` and ``R_A + R_B`` merged replicate columns
        """
        if first_source.label == second_source.label:
            raise ConfigError("Merge sources need distinct labels")

        self._check_source(first, first_source)
        self._check_source(second, second_source)

        n_first = len(first_source.replicate_weights)
        n_second = len(second_source.replicate_weights)
        merged_columns = self.merged_replicate_columns(n_first + n_second)

        first_weights = self._weight_block(first, first_source, leading=True, width=n_second)
        second_weights = self._weight_block(second, second_source, leading=False, width=n_first)

        first_part = pd.concat([self._tag(first, first_source), first_weights], axis=1)
        second_part = pd.concat([self._tag(second, second_source), second_weights], axis=1)

        merged = pd.concat([first_part, second_part], axis=0, join='outer', ignore_index=True, sort=False)

        self.logger.info(
            f"Merged {len(first)} rows of {first_source.label} and {len(second)} rows of "
            f"{second_source.label} with {len(merged_columns)} replicate weights"
        )

        return merged

    def replicate_design(self,
                         first_source: MergeSource,
                         second_source: MergeSource,
                         type: str = "JKn",
                         scale: Optional[float] = None,
                         rscales: Optional[List[float]] = None) -> ReplicateWeights:
        """
        Replicate-weight descriptor for a merged dataset.

        By default each block of replicates keeps its own cycle's jackknife
        multiplier, so restricting the merged design to one cycle reproduces
        that cycle's standard errors. Equal multipliers become the design
        scale; unequal ones become per-replicate ``rscales`` under scale 1.
        """
        for source in (first_source, second_source):
            if not source.replicate_weights:
                raise ConfigError(f"{source.label}: no replicate weights given")

        first_count = len(first_source.replicate_weights)
        second_count = len(second_source.replicate_weights)
        count = first_count + second_count

        if scale is None:
            first_scale = first_source.replicate_scale
            second_scale = second_source.replicate_scale
            if np.isclose(first_scale, second_scale):
                scale = first_scale
            elif rscales is None:
                scale = 1.0
                rscales = [first_scale] * first_count + [second_scale] * second_count
            else:
                raise ConfigError(
                    f"{first_source.label} and {second_source.label} use different replicate "
                    f"scales ({first_scale} and {second_scale}); pass scale explicitly with rscales"
                )
            self.logger.debug(f"Merged replicate scale {scale} over {count} replicates")

        return ReplicateWeights(
            weight=self.merged_weight_column(),
            replicate_weights=tuple(self.merged_replicate_columns(count)),
            type=type,
            scale=scale,
            rscales=tuple(rscales) if rscales is not None else None,
        )

    def _check_source(self, data: pd.DataFrame, source: MergeSource) -> None:
        required = [source.weight] + list(source.replicate_weights)
        missing = [column for column in required if column not in data.columns]
        if missing:
            raise ConfigError(f"{source.label}: weight columns not found: {missing}")

        if not source.replicate_weights:
            raise ConfigError(f"{source.label}: at least one replicate weight is required")

        clashes = [
            column for column in data.columns
            if column == self.source_column or str(column).startswith(self.weight_prefix)
        ]
        if clashes:
            raise ConfigError(f"{source.label}: columns clash with merged layout: {clashes}")

        if data[required].isna().any().any():
            raise ConfigError(f"{source.label}: weight columns have missing values")

    def _tag(self, data: pd.DataFrame, source: MergeSource) -> pd.DataFrame:
        tagged = data.reset_index(drop=True).copy()
        tagged[self.source_column] = source.label
        return tagged

    def _weight_block(self,
                      data: pd.DataFrame,
                      source: MergeSource,
                      leading: bool,
                      width: int) -> pd.DataFrame:
        """
        Merged weights for one source.

        ``leading`` sources put their own replicates first and pad the
        trailing ``width`` columns with the base weight; the other source
        pads the leading ``width`` columns instead.
        """
        base = data[source.weight].reset_index(drop=True).astype(float)
        own = data[list(source.replicate_weights)].reset_index(drop=True).astype(float).to_numpy()
        padding = np.repeat(base.to_numpy()[:, None], width, axis=1)

        block = np.hstack([own, padding]) if leading else np.hstack([padding, own])
        columns = self.merged_replicate_columns(block.shape[1])

        weights = pd.DataFrame(block, columns=columns)
        weights.insert(0, self.merged_weight_column(), base.to_numpy())
        return weights
