"""
Test suite for the package index crawler.

Provides tests for all modules:
- Unit tests for individual components
- End-to-end crawl runs against mocked registries
- Fixtures for archives, settings and storage
"""
