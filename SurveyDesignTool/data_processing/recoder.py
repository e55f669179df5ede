"""
Categorical recoding of raw survey codes.

Raw integer codes from the codebook are mapped onto labelled pandas
categoricals. The raw columns are never modified, so derived variables can
always be re-created from the original data.
"""

import logging
from typing import Dict, List, Optional, Iterable
import pandas as pd
import numpy as np

from .models import RecodeRule, VariableDefinition, VariableType, SurveyMetadata
from ..exceptions import ConfigError


class Recoder:
    """
    Applies recoding rules to survey data.

    Features:
    - Code to label mapping with many-to-one collapsing
    - Reference (baseline) level assignment for regression models
    - Unmapped and missing codes become NaN
    - Raw source columns left untouched
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def validate_rules(self, data: pd.DataFrame, rules: Iterable[RecodeRule]) -> List[RecodeRule]:
        """Check a set of rules against the columns of ``data``."""
        rules = list(rules)
        source_columns = {rule.source_column for rule in rules}
        targets = set()

        for rule in rules:
            if not rule.mapping:
                raise ConfigError(f"Recode rule for '{rule.source_column}' has an empty mapping")

            if rule.source_column not in data.columns:
                raise ConfigError(f"Source column '{rule.source_column}' not found in data")

            if rule.reference_label not in rule.mapping.values():
                raise ConfigError(
                    f"Reference label '{rule.reference_label}' is not one of the "
                    f"labels mapped from '{rule.source_column}'"
                )

            if rule.target_column in source_columns:
                raise ConfigError(
                    f"Target column '{rule.target_column}' would overwrite raw codes"
                )

            if rule.target_column in targets:
                raise ConfigError(f"Duplicate target column '{rule.target_column}'")
            targets.add(rule.target_column)

        return rules

    def recode(self,
               data: pd.DataFrame,
               rules: Iterable[RecodeRule],
               metadata: Optional[SurveyMetadata] = None) -> pd.DataFrame:
        """
        Derive categorical columns from raw codes.

        Parameters
        ----------
        data : pd.DataFrame
            Survey data holding the raw code columns
        rules : iterable of RecodeRule
            Independent recoding rules
        metadata : SurveyMetadata, optional
            If given, a VariableDefinition is registered for each derived column

        Returns
        -------
        pd.DataFrame
            Copy of ``data`` with one added categorical column per rule
        """
        rules = self.validate_rules(data, rules)
        recoded = data.copy()

        for rule in rules:
            recoded[rule.target_column] = self.apply_rule(data[rule.source_column], rule)

            n_missing = int(recoded[rule.target_column].isna().sum())
            self.logger.info(
                f"Recoded {rule.source_column} -> {rule.target_column} "
                f"({len(rule.labels)} levels, reference '{rule.reference_label}', "
                f"{n_missing} missing)"
            )

            if metadata is not None:
                metadata.add_variable(VariableDefinition(
                    name=rule.target_column,
                    label=rule.target_column,
                    type=VariableType.ORDINAL if rule.ordered else VariableType.NOMINAL,
                    categories=dict(rule.mapping),
                    recoded_from=rule.source_column
                ))

        return recoded

    def apply_rule(self, codes: pd.Series, rule: RecodeRule) -> pd.Categorical:
        """Map a single raw code series through ``rule``."""
        mapping = self._normalise_mapping(rule.mapping)
        labels = codes.map(lambda code: mapping.get(self._normalise_code(code), np.nan))

        return pd.Categorical(labels, categories=rule.labels, ordered=rule.ordered)

    def relevel(self, data: pd.DataFrame, column: str, reference_label: str) -> pd.DataFrame:
        """Return a copy of ``data`` with ``reference_label`` as the first level of ``column``."""
        if column not in data.columns:
            raise ConfigError(f"Column '{column}' not found in data")

        series = data[column]
        if not isinstance(series.dtype, pd.CategoricalDtype):
            raise ConfigError(f"Column '{column}' is not categorical")

        categories = list(series.cat.categories)
        if reference_label not in categories:
            raise ConfigError(f"'{reference_label}' is not a level of '{column}'")

        categories.remove(reference_label)
        releveled = data.copy()
        releveled[column] = series.cat.reorder_categories([reference_label] + categories)
        return releveled

    @staticmethod
    def _normalise_code(code):
        # Readers return numeric codes as floats; 1.0 and 1 must match.
        if isinstance(code, (float, np.floating)):
            if np.isnan(code):
                return code
            if float(code).is_integer():
                return int(code)
        if isinstance(code, np.integer):
            return int(code)
        return code

    def _normalise_mapping(self, mapping: Dict) -> Dict:
        return {self._normalise_code(code): label for code, label in mapping.items()}
