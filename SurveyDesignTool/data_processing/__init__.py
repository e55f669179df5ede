"""Data processing module for survey design analysis."""

from .data_loader import DataLoader
from .recoder import Recoder
from .survey_design import SurveyDesign, SurveyDesignBuilder, replicate_columns
from .dataset_merger import DatasetMerger
from .models import (
    VariableType,
    VariableDefinition,
    SurveyMetadata,
    RecodeRule,
    ReplicateWeights,
    Linearization,
    VarianceMethod,
    MergeSource,
    CrosstabResult,
    ChiSquareResult,
    GLMResult
)

__all__ = [
    'DataLoader',
    'Recoder',
    'SurveyDesign',
    'SurveyDesignBuilder',
    'replicate_columns',
    'DatasetMerger',
    'VariableType',
    'VariableDefinition',
    'SurveyMetadata',
    'RecodeRule',
    'ReplicateWeights',
    'Linearization',
    'VarianceMethod',
    'MergeSource',
    'CrosstabResult',
    'ChiSquareResult',
    'GLMResult'
]
