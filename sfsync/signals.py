"""
Change notifications of records and collections.

The sender is the class of the record or collection. Receivers get keyword
arguments:
    record_changed:     instance, changes (dict of new values), tracked (bool)
    record_synced:      instance, method ('create', 'update', 'read' or 'delete'), response
    record_destroyed:   instance
    collection_reset:   instance, records (list of models)
    collection_added:   instance, records (list of added models)
    sync_error:         instance, method, exception
"""
from django.dispatch import Signal

record_changed = Signal()
record_synced = Signal()
record_destroyed = Signal()
collection_reset = Signal()
collection_added = Signal()
sync_error = Signal()
