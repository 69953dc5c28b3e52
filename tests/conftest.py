"""
Shared pytest configuration and fixtures for modelterms tests.

This module provides common test fixtures, utilities, and configuration
used across the test suite.
"""

import pytest
import numpy as np
import pandas as pd
from pathlib import Path
import tempfile

from modelterms.config.settings import ModelTermsConfig, reset_config
from modelterms.data.tables import ColumnTable, DataFrameTable


# Test configuration
pytest_plugins = []


@pytest.fixture(scope="session")
def sample_survey_data():
    """Small mixed-type dataset: numeric, string and boolean columns."""
    return {
        "y": [1.5, 2.0, 3.5, 0.5, 4.0, 2.5],
        "x": [1.0, 2.0, 3.0, 4.0, 5.0, 6.0],
        "w": [0.5, 0.25, 1.0, 2.0, 4.0, 8.0],
        "a": ["lo", "mid", "hi", "lo", "mid", "hi"],
        "b": ["f", "m", "m", "f", "f", "m"],
        "flag": [True, False, True, True, False, False],
    }


@pytest.fixture
def sample_frame(sample_survey_data):
    """The sample data as a pandas DataFrame."""
    return pd.DataFrame(sample_survey_data)


@pytest.fixture
def sample_table(sample_frame):
    """The sample data wrapped in a DataFrameTable."""
    return DataFrameTable(sample_frame)


@pytest.fixture
def column_table(sample_survey_data):
    """The sample data wrapped in a ColumnTable of numpy arrays."""
    return ColumnTable({name: np.asarray(values) for name, values in sample_survey_data.items()})


@pytest.fixture
def def_table():
    """Categorical column whose values first appear as d, e, f."""
    return pd.DataFrame({
        "y": [1.0, 2.0, 3.0, 4.0, 5.0],
        "c": ["d", "e", "f", "e", "d"],
    })


@pytest.fixture
def test_config():
    """Fresh configuration isolated from environment and files."""
    return ModelTermsConfig()


@pytest.fixture
def temp_data_file(sample_frame):
    """Create a temporary CSV file with sample data."""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.csv', delete=False) as f:
        sample_frame.to_csv(f, index=False)
        temp_path = f.name

    yield temp_path

    # Cleanup
    Path(temp_path).unlink(missing_ok=True)


@pytest.fixture(autouse=True)
def isolate_global_config(monkeypatch):
    """Reset the global configuration and drop MODELTERMS_* variables."""
    for env_var in (
        "MODELTERMS_LOG_LEVEL",
        "MODELTERMS_LEVEL_ORDER",
        "MODELTERMS_DEFAULT_CONTRASTS",
        "MODELTERMS_BACKEND",
        "MODELTERMS_MAX_WORKERS",
    ):
        monkeypatch.delenv(env_var, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def set_random_seed():
    """Set random seed for reproducible tests."""
    np.random.seed(42)


# Markers for different test types
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test (fast)"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (medium speed)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow (may take >10 seconds)"
    )


# Test utilities
class TestUtils:
    """Utility functions for testing."""

    @staticmethod
    def create_synthetic_frame(n_rows=50, n_levels=3):
        """Create a random frame with one continuous and two categorical columns."""
        rng = np.random.default_rng(42)
        return pd.DataFrame({
            "y": rng.normal(size=n_rows),
            "x": rng.uniform(1.0, 10.0, size=n_rows),
            "g": rng.choice([f"g{i}" for i in range(n_levels)], size=n_rows),
            "h": rng.choice(["p", "q"], size=n_rows),
        })

    @staticmethod
    def assert_matrix_consistent(matrix, column_names, n_rows):
        """Assert that a generated matrix matches its names and row count."""
        matrix = np.asarray(matrix)
        assert matrix.ndim == 2
        assert matrix.shape == (n_rows, len(column_names))
        assert len(set(column_names)) == len(column_names)


@pytest.fixture
def test_utils():
    """Provide test utilities."""
    return TestUtils
