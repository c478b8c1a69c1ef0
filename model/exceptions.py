#!/usr/bin/env python3
"""
Custom exceptions for the count-regression LOO analysis.

Configuration-class problems (missing dataset, malformed model
specification, undefined exposure offset) are raised as exceptions from
this hierarchy. Statistical reliability problems (non-convergence, high
Pareto k) are not exceptions; see ``model.results.DiagnosticWarning``.
"""


class AnalysisError(Exception):
    """Base exception class for all analysis errors."""
    def __init__(self, message, details=None):
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self):
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


# Data-related errors
class DataError(AnalysisError):
    """Error related to data loading or validation."""
    pass


class DatasetNotFoundError(DataError):
    """Named dataset is unknown or its source file is absent."""
    pass


class DataValidationError(DataError):
    """Dataset does not have the expected schema."""
    pass


# Model-related errors
class ModelError(AnalysisError):
    """Base class for model-related errors."""
    pass


class ModelSpecError(ModelError):
    """Malformed model specification (unknown covariate, bad family, ...)."""
    pass


class ModelBuildError(ModelError):
    """Error related to building a model graph from data."""
    pass


class SamplingError(ModelError):
    """Error related to MCMC sampling."""
    pass


class ModelEvaluationError(ModelError):
    """Error related to cross-validation or predictive checks."""
    pass


class ComparisonError(ModelEvaluationError):
    """LOO results cannot be compared (e.g. different observations)."""
    pass


# Configuration-related errors
class ConfigurationError(AnalysisError):
    """Error related to configuration."""
    pass


# Results-related errors
class ResultsError(AnalysisError):
    """Error related to results handling."""
    pass


# Visualization-related errors
class VisualizationError(AnalysisError):
    """Error raised when a diagnostic plot cannot be produced."""
    pass
