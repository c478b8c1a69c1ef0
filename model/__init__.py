"""
Model package for the count-model LOO analysis.

This package provides model specification, fitting, cross-validation,
comparison and predictive checking for Poisson and negative-binomial
regression.
"""

# ModelRunner is not re-exported here: data.data_loader imports
# model.constants, and model_runner imports data.data_loader
from model.exceptions import (
    AnalysisError, ModelError, DataError, ModelSpecError, ModelBuildError,
    SamplingError, ModelEvaluationError, ComparisonError,
)
from model.specification import Family, PriorSpec, ModelSpec, build_model_grid
from model.results import DiagnosticWarning, FittedModel

__all__ = [
    'AnalysisError', 'ModelError', 'DataError', 'ModelSpecError', 'ModelBuildError',
    'SamplingError', 'ModelEvaluationError', 'ComparisonError',
    'Family', 'PriorSpec', 'ModelSpec', 'build_model_grid',
    'DiagnosticWarning', 'FittedModel',
]
