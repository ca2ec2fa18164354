"""
REST API client layer for Force.com (Salesforce), independent on models.

Purpose:
The models and collections need only an authenticated request primitive,
a query with continuation and a few URL helpers. Everything related to
the network, authentication and error responses is here.
"""

import logging

log = logging.getLogger(__name__)

# The maximal number of retries for connection errors in requests to Force.com API.
# Can be set dynamically
# None: use defaults from settings.REQUESTS_MAX_RETRIES (default 1)
# 0: no retry
# 1: one retry
MAX_RETRIES = None


def get_max_retries():
    """Get the maximal number of requests retries"""
    global MAX_RETRIES  # pylint:disable=global-statement
    from django.conf import settings
    if MAX_RETRIES is None:
        MAX_RETRIES = getattr(settings, 'REQUESTS_MAX_RETRIES', 1)
    return MAX_RETRIES


def get_settings_dict(alias):
    """Get the connection settings dict of `alias` from settings.SALESFORCE_CONNECTIONS"""
    from django.conf import settings
    from django.core.exceptions import ImproperlyConfigured
    connections = getattr(settings, 'SALESFORCE_CONNECTIONS', {})
    if alias not in connections:
        raise ImproperlyConfigured("The Salesforce connection %r is not configured in "
                                   "settings.SALESFORCE_CONNECTIONS" % alias)
    return connections[alias]
