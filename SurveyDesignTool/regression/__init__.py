"""Survey-weighted regression models."""

from .weighted_glm import WeightedGLM

__all__ = [
    'WeightedGLM'
]
