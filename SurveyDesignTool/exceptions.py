"""
Exception types raised by the survey design tool.

All errors derive from SurveyDesignError, which itself subclasses ValueError
so callers that already guard analysis calls with ``except ValueError`` keep
working.
"""


class SurveyDesignError(ValueError):
    """Base class for all survey design tool errors."""


class FormatError(SurveyDesignError):
    """Input file is not a recognised table format, or is corrupt/truncated."""


class ConfigError(SurveyDesignError):
    """Malformed recoding rule, design descriptor or model formula."""


class ConvergenceError(SurveyDesignError):
    """Weighted likelihood maximisation did not converge."""

    def __init__(self, message: str, iterations: int = 0):
        super().__init__(message)
        self.iterations = iterations
