"""
Unit tests of sfsync. They run offline with mocked requests.

Run them by:  pytest
(with DJANGO_SETTINGS_MODULE=sfsync.tests.settings configured in pyproject.toml)
"""
