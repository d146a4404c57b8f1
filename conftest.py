"""Root conftest.py for pytest.

Ensures the project root is importable and the environment is in test
mode before any config/core/server module is imported.
"""
import os
import sys

project_root = os.path.dirname(os.path.abspath(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

os.environ.setdefault("TESTING", "true")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-pytest-32chars!")
os.environ.setdefault("DB_TYPE", "mysql")
os.environ.setdefault("SESSION_STORE", "memory")


def pytest_configure(config):
    """Configure pytest path early in the process."""
    if project_root not in sys.path:
        sys.path.insert(0, project_root)
