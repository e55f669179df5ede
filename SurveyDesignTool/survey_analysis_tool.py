"""
Main Survey Design Tool class.

This module provides the primary interface for design-based survey analysis,
integrating data loading, recoding, survey design construction, weighted
estimation and the merging of survey cycles.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union, Tuple, Any
import pandas as pd
import numpy as np

from .config import AnalysisConfig, load_analysis_config
from .data_processing import (
    DataLoader, Recoder, SurveyDesignBuilder, DatasetMerger, SurveyDesign,
    SurveyMetadata, RecodeRule, MergeSource, VarianceMethod,
    CrosstabResult, ChiSquareResult, GLMResult
)
from .categorical_analysis import ChiSquareTests, CrossTabulation
from .regression import WeightedGLM


class SurveyDesignTool:
    """
    Design-based survey analysis tool.

    This is the main interface that integrates all analysis components,
    providing a unified API from file loading through weighted estimation.

    Features:
    - Loading of SPSS, Stata, SAS and delimited survey files
    - Codebook-driven recoding into labelled categoricals
    - Replicate-weight and linearization survey designs
    - Weighted crosstabs with design-based standard errors
    - Rao-Scott chi-square tests
    - Survey-weighted GLMs (logistic and linear)
    - Merging of two survey cycles into one replicate-weight dataset
    """

    def __init__(self,
                 config_path: Optional[str] = None,
                 log_level: str = 'INFO'):
        """
        Initialize the Survey Design Tool.

        Parameters
        ----------
        config_path : str, optional
            Path to a JSON analysis configuration file
        log_level : str, default 'INFO'
            Logging level
        """
        logging.basicConfig(
            level=getattr(logging, log_level.upper()),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        self.logger = logging.getLogger(__name__)

        self.config = load_analysis_config(config_path) if config_path else AnalysisConfig()

        # Initialize components
        self.data_loader = DataLoader()
        self.recoder = Recoder()
        self.design_builder = SurveyDesignBuilder()
        self.dataset_merger = DatasetMerger()
        self.cross_tabulation = CrossTabulation()
        self.chi_square_tests = ChiSquareTests()
        self.weighted_glm = WeightedGLM()

        # Data storage
        self.data = None
        self.metadata = None
        self.designs: Dict[str, SurveyDesign] = {}
        self.analysis_results: Dict[str, List[Any]] = {}

        self.logger.info("Survey Design Tool initialized successfully")

    def load_survey_data(self,
                         file_path: Union[str, Path],
                         metadata_path: Optional[Union[str, Path]] = None,
                         missing_codes: Optional[List[Union[int, float]]] = None,
                         **kwargs) -> pd.DataFrame:
        """
        Load survey data from file.

        Parameters
        ----------
        file_path : str or Path
            Path to survey data file
        metadata_path : str or Path, optional
            Path to JSON metadata sidecar
        missing_codes : list, optional
            Codes converted to NaN; defaults to the configured missing codes
        **kwargs
            Additional arguments for the format-specific reader

        Returns
        -------
        pd.DataFrame
            Loaded survey data
        """
        self.logger.info(f"Loading survey data from {file_path}")

        if missing_codes is None:
            missing_codes = self.config.missing_codes

        try:
            self.data, self.metadata = self.data_loader.load_data(
                file_path, metadata_path, convert_missing_codes=missing_codes, **kwargs
            )
            self.designs = {}
            return self.data

        except Exception as e:
            self.logger.error(f"Failed to load survey data: {e}")
            raise

    def recode_variables(self,
                         rules: Optional[List[RecodeRule]] = None,
                         data: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        """
        Add recoded categorical columns to the survey data.

        Parameters
        ----------
        rules : list of RecodeRule, optional
            Rules to apply. Uses the configured recodes if not provided
        data : pd.DataFrame, optional
            Data to recode. Uses self.data if not provided

        Returns
        -------
        pd.DataFrame
            Data with the derived columns added
        """
        data = self._resolve_data(data)
        rules = self.config.recodes if rules is None else rules

        try:
            self.data = self.recoder.recode(data, rules, self.metadata)
            self.designs = {}
            return self.data

        except Exception as e:
            self.logger.error(f"Recoding failed: {e}")
            raise

    def build_design(self,
                     name: str,
                     method: Optional[VarianceMethod] = None,
                     data: Optional[pd.DataFrame] = None) -> SurveyDesign:
        """
        Build and register a survey design.

        Parameters
        ----------
        name : str
            Name under which the design is stored; also the configured
            design looked up when ``method`` is not given
        method : ReplicateWeights or Linearization, optional
            Variance method descriptor
        data : pd.DataFrame, optional
            Data to wrap. Uses self.data if not provided

        Returns
        -------
        SurveyDesign
        """
        data = self._resolve_data(data)
        method = self.config.design(name) if method is None else method

        try:
            design = self.design_builder.build(data, method, label=name)
            self.designs[name] = design
            return design

        except Exception as e:
            self.logger.error(f"Survey design '{name}' could not be built: {e}")
            raise

    def weighted_crosstab(self,
                          design: Union[str, SurveyDesign],
                          group_columns: Union[str, List[str]],
                          filters: Optional[List[str]] = None,
                          level: float = 0.95) -> CrosstabResult:
        """Weighted counts, totals and proportions by group."""
        design = self._resolve_design(design)

        try:
            result = self.cross_tabulation.weighted_crosstab(design, group_columns, filters, level)
            self._store('cross_tabulations', result)
            return result

        except Exception as e:
            self.logger.error(f"Cross-tabulation failed: {e}")
            raise

    def chi_square_test(self,
                        design: Union[str, SurveyDesign],
                        row_variable: str,
                        column_variable: str,
                        statistic: str = "F",
                        filters: Optional[List[str]] = None) -> ChiSquareResult:
        """Rao-Scott chi-square test of association."""
        design = self._resolve_design(design)

        try:
            result = self.chi_square_tests.svychisq(
                design, row_variable, column_variable, statistic, filters
            )
            self._store('chi_square_tests', result)
            return result

        except Exception as e:
            self.logger.error(f"Chi-square test failed: {e}")
            raise

    def fit_glm(self,
                design: Union[str, SurveyDesign],
                formula: str,
                family: str = "quasibinomial",
                filters: Optional[List[str]] = None,
                start_params: Optional[np.ndarray] = None) -> GLMResult:
        """Survey-weighted generalized linear model."""
        design = self._resolve_design(design)

        try:
            result = self.weighted_glm.fit(design, formula, family, filters, start_params)
            self._store('glm_fits', result)
            self.logger.info(f"GLM fitted: {formula} ({len(result.coefficients)} coefficients)")
            return result

        except Exception as e:
            self.logger.error(f"GLM fit failed: {e}")
            raise

    def merge_surveys(self,
                      first: pd.DataFrame,
                      second: pd.DataFrame,
                      first_source: MergeSource,
                      second_source: MergeSource,
                      design_name: Optional[str] = None) -> pd.DataFrame:
        """
        Merge two survey cycles and make the result the active dataset.

        If ``design_name`` is given, a replicate design over the merged
        weights is built and registered under that name.
        """
        try:
            merged = self.dataset_merger.merge(first, second, first_source, second_source)
            self.data = merged
            self.designs = {}

            if design_name:
                method = self.dataset_merger.replicate_design(first_source, second_source)
                self.build_design(design_name, method)

            return merged

        except Exception as e:
            self.logger.error(f"Merging surveys failed: {e}")
            raise

    def get_analysis_summary(self) -> Dict[str, Any]:
        """
        Get summary of the loaded data, designs and completed analyses.

        Returns
        -------
        dict
            Summary of analysis state
        """
        summary = {
            'data_loaded': self.data is not None,
            'n_records': len(self.data) if self.data is not None else 0,
            'n_variables': len(self.data.columns) if self.data is not None else 0,
            'has_metadata': self.metadata is not None,
            'designs': {name: design.method_name for name, design in self.designs.items()},
            'analyses_completed': list(self.analysis_results.keys()),
        }

        if 'chi_square_tests' in self.analysis_results:
            tests = self.analysis_results['chi_square_tests']
            summary['n_chi_square_tests'] = len(tests)
            summary['significant_chi_square_tests'] = sum(1 for t in tests if t.is_significant())

        return summary

    def _resolve_data(self, data: Optional[pd.DataFrame]) -> pd.DataFrame:
        if data is None:
            data = self.data
        if data is None:
            raise ValueError("No data available for analysis")
        return data

    def _resolve_design(self, design: Union[str, SurveyDesign]) -> SurveyDesign:
        if isinstance(design, SurveyDesign):
            return design
        if design not in self.designs:
            raise ValueError(f"No survey design named '{design}'")
        return self.designs[design]

    def _store(self, key: str, result: Any) -> None:
        self.analysis_results.setdefault(key, []).append(result)
