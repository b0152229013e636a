"""Test suite for celltype-concordance.

Test organization:
- fixtures/: Synthetic count data generators and test utilities
- unit/: Unit tests for individual modules and the end-to-end pipeline

Run tests with:
    pytest tests/
    pytest tests/unit/
    pytest tests/ -v --tb=short
"""
