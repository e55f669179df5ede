"""
Survey Design Tool

Design-based analysis of complex survey data: loading public-use files,
recoding codebook values, building replicate-weight or linearization survey
designs, and computing weighted crosstabs, Rao-Scott chi-square tests and
survey-weighted GLMs. Two survey cycles can be merged into a single
replicate-weight dataset.
"""

__version__ = "1.0.0"

from .survey_analysis_tool import SurveyDesignTool
from .exceptions import SurveyDesignError, FormatError, ConfigError, ConvergenceError
from .data_processing.models import (
    VariableType,
    VariableDefinition,
    SurveyMetadata,
    RecodeRule,
    ReplicateWeights,
    Linearization,
    MergeSource,
    GLMFamily,
    TestType,
    CrosstabResult,
    ChiSquareResult,
    GLMResult
)
from .data_processing.survey_design import SurveyDesign, replicate_columns

__all__ = [
    'SurveyDesignTool',
    'SurveyDesignError',
    'FormatError',
    'ConfigError',
    'ConvergenceError',
    'VariableType',
    'VariableDefinition',
    'SurveyMetadata',
    'RecodeRule',
    'ReplicateWeights',
    'Linearization',
    'MergeSource',
    'GLMFamily',
    'TestType',
    'CrosstabResult',
    'ChiSquareResult',
    'GLMResult',
    'SurveyDesign',
    'replicate_columns'
]
