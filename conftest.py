"""
Pytest configuration file.

This file is automatically loaded by pytest and provides global test configuration.
It ensures the project's source directory is added to the Python path so that
modules can be imported properly during test execution, and provides the
fixtures shared by the upload tests.
"""
import io
import os
import sys

import pandas as pd
import pytest

# Add the current directory to the Python path
# This ensures imports work correctly when running tests
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))


def workbook_bytes(df: pd.DataFrame, sheet_name: str = "Voters") -> bytes:
    """Serialize a DataFrame into an in-memory .xlsx workbook."""
    buffer = io.BytesIO()
    df.to_excel(buffer, index=False, sheet_name=sheet_name)
    return buffer.getvalue()


@pytest.fixture
def sample_df():
    """
    Fixture providing a sample DataFrame for testing.

    Returns:
        pandas.DataFrame: A sample DataFrame with test data
    """
    return pd.DataFrame({
        'first_name': ['John', 'Jane'],
        'last_name': ['Doe', 'Smith'],
        'age': [30, 25],
    })


@pytest.fixture
def make_workbook():
    """Factory turning a DataFrame into .xlsx bytes."""
    return workbook_bytes


@pytest.fixture
def sample_workbook(sample_df):
    """Bytes of a valid .xlsx file containing ``sample_df``."""
    return workbook_bytes(sample_df)


@pytest.fixture(autouse=True)
def clean_upload_env(monkeypatch):
    """Keep deployment variables from the host out of the tests."""
    for name in ("VERCEL", "MAX_FILE_SIZE_MB", "REQUIRED_COLUMNS"):
        monkeypatch.delenv(name, raising=False)
