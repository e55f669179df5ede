"""Design-based variance estimation."""

from .variance import design_covariance, replicate_covariance, linearized_covariance, standard_errors

__all__ = [
    'design_covariance',
    'replicate_covariance',
    'linearized_covariance',
    'standard_errors'
]
