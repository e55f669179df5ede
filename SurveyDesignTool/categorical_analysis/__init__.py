"""Categorical data analysis module for survey designs."""

from .chi_square_tests import ChiSquareTests
from .cross_tabulation import CrossTabulation

__all__ = [
    'ChiSquareTests',
    'CrossTabulation'
]
