"""
Dirty fields of a record, for a minimal payload of partial updates.

The protocol of one update:
    working = tracker.snapshot()   # the live set is cleared optimistically
    ... send the payload of `working` ...
    tracker.restore(working)       # only if the request failed

Mutations that come while the request is in flight are collected in the
live set. They are never conflated with the sent batch and nothing is lost
if the request fails, because the sent names are merged back by union.
"""
import threading


class DirtyFieldTracker(object):
    """Set of field names modified since the last partial update"""

    def __init__(self, id_field='Id'):
        self.id_field = id_field
        self._pending = set()
        # snapshot + clear and the merge after failure are atomic
        self._lock = threading.RLock()

    def __contains__(self, name):
        return name in self._pending

    def __iter__(self):
        return iter(self.pending)

    def __len__(self):
        return len(self._pending)

    def __repr__(self):
        return '<DirtyFieldTracker: %s>' % sorted(self._pending)

    @property
    def pending(self):
        """A copy of the current set of dirty field names"""
        with self._lock:
            return frozenset(self._pending)

    def record(self, names):
        """Add field names to the dirty set. The identity field is never added."""
        with self._lock:
            self._pending.update(name for name in names if name != self.id_field)

    def snapshot(self):
        """Take the dirty set for a payload and clear the live set"""
        with self._lock:
            working = frozenset(self._pending)
            self._pending.clear()
        return working

    def restore(self, working):
        """Merge names of a failed payload back to the (possibly repopulated) live set"""
        with self._lock:
            self._pending.update(working)

    def clear(self):
        with self._lock:
            self._pending.clear()

    def build_payload(self, attributes):
        """
        Snapshot the dirty set and select the values of dirty fields from `attributes`.

        Returns (payload, working_set). The identity field is never in the payload.
        """
        with self._lock:
            working = self.snapshot()
            values = dict(attributes)
        payload = {name: value for name, value in values.items() if name in working}
        payload.pop(self.id_field, None)
        return payload, working
