"""Pytest configuration and fixtures"""

import matplotlib
matplotlib.use("Agg")

import pytest
import numpy as np
import tempfile
from pathlib import Path

from robust_lm.models import Dataset
from robust_lm.data import SyntheticDataGenerator, SimulationConfig
from robust_lm.algorithms import BayesianRegression, SamplerConfig


@pytest.fixture
def synthetic_generator():
    """Create synthetic data generator with the standard settings"""
    return SyntheticDataGenerator(SimulationConfig())


@pytest.fixture(scope="session")
def datasets():
    """Clean, outlier and outlier_dropped datasets"""
    return SyntheticDataGenerator(SimulationConfig()).generate_complete_dataset()


@pytest.fixture
def clean_dataset(datasets):
    return datasets['clean']


@pytest.fixture
def outlier_dataset(datasets):
    return datasets['outlier']


@pytest.fixture
def line_dataset():
    """Small dataset scattered around y = 1 + 2x"""
    np.random.seed(42)
    x = np.linspace(-2, 2, 30)
    y = 1.0 + 2.0 * x + np.random.normal(0, 0.3, size=x.size)
    return Dataset.from_arrays("line", x, y)


@pytest.fixture(scope="session")
def fast_sampler_config():
    """Sampler settings small enough for unit tests"""
    return SamplerConfig(chains=4, warmup=500, draws=1000, seed=2024)


def _fit(family, dataset, config, **kwargs):
    model = BayesianRegression(family=family, sampler_config=config, **kwargs)
    model.fit(dataset)
    return model


@pytest.fixture(scope="session")
def gaussian_clean_model(datasets, fast_sampler_config):
    """Gaussian fit to the clean data"""
    return _fit('gaussian', datasets['clean'], fast_sampler_config)


@pytest.fixture(scope="session")
def gaussian_outlier_model(datasets, fast_sampler_config):
    """Gaussian fit to the outlier data"""
    return _fit('gaussian', datasets['outlier'], fast_sampler_config)


@pytest.fixture(scope="session")
def student_outlier_model(datasets, fast_sampler_config):
    """Student-t fit (nu estimated) to the outlier data"""
    return _fit('student', datasets['outlier'], fast_sampler_config)


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)
