"""
Bayesian model components for count regression.

Components:
- model_builder.py: PyMC model graphs for Poisson and negative-binomial
  regression with an exposure offset
"""

from model.bayesian.model_builder import CountModelBuilder, ModelData

__all__ = ['CountModelBuilder', 'ModelData']
