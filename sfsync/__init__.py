# sfsync
#

"""
Records and query-backed collections synchronized with Salesforce REST API.

structure:
    sfsync/models.py, collection.py - what the application uses
    sfsync/tracker.py, sync.py - partial update reconciliation and CRUD dispatch
    sfsync/rest/*.py - REST client, independent on models
"""

API_VERSION = '59.0'
__version__ = '0.3.0'
