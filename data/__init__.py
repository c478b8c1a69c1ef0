"""
Data package for the count-model LOO analysis.

This package provides dataset loading and synthetic data generation.
"""

from data.data_loader import DataLoader
from data.simulation import simulate_roach_data

__all__ = ['DataLoader', 'simulate_roach_data']
