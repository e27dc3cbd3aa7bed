"""
Test suite for the Pharmacy Forecast Service.

Run all tests: pytest
Run with coverage: pytest --cov=. --cov-report=html
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_algorithm_service.py -v
"""
