"""
feedcrawl Test Suite

Structure:
- unit/: Fast, isolated tests. Browsers and pages are replaced with the
  fakes in conftest.py, storage is InMemoryStorage.
"""
