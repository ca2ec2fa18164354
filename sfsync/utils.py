# sfsync

"""
A set of tools for Salesforce API versions.
"""

import sfsync


def get_highest_api_version(connections):
    """Get the highest version of Force.com API supported by all `connections`"""
    if not isinstance(connections, (list, tuple)):
        connections = [connections]
    # versions are compared as numbers, e.g. '9.0' < '59.0'
    return min((max((x['version'] for x in connection.versions_request()), key=float)
                for connection in connections), key=float)


def set_highest_api_version(connections):
    """Set the highest version of Force.com API supported by all `connections`

    It is set globally for new connections and for the given connections.
    """
    if not isinstance(connections, (list, tuple)):
        connections = [connections]
    max_version = get_highest_api_version(connections)
    setattr(sfsync, 'API_VERSION', max_version)
    for connection in connections:
        connection.api_ver = max_version
    return max_version
