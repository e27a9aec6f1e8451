"""Data generation and loading modules"""

from .synthetic_generator import SyntheticDataGenerator, SimulationConfig
from .data_loader import DataLoader

__all__ = [
    'SyntheticDataGenerator',
    'SimulationConfig',
    'DataLoader'
]
