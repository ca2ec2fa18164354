"""
Synchronization of one record with Salesforce (create, read, update, delete)

The partial update is reconciled here: the dirty fields are taken by a
snapshot before the request and merged back if the request fails.
"""
import logging

from sfsync.rest.connection import METHOD_MAP
from sfsync.rest.conversions import payload_to_json
from sfsync.rest.exceptions import Error
from sfsync.signals import record_synced, sync_error

log = logging.getLogger(__name__)


def sync(method, model, success=None, error=None):
    """
    Send the request of `method` for the `model` and update it by the response.

    Params:
        method:   'create', 'update', 'read' or 'delete'
        success:  callback success(model, response_data)
        error:    callback error(model, exception). The exception is raised
                  if no error callback is given.
    Returns the decoded response data (None for empty responses and errors
    reported to the callback).
    """
    http_method = METHOD_MAP[method]
    # configuration errors are raised before any request
    connection = model.get_connection()
    sobject_type = model.get_sobject_type()

    obj_id = None if method == 'create' else model.id
    payload = working = None
    if method == 'create':
        payload = model.to_json()
    elif method == 'update':
        payload, working = model.tracker.build_payload(model.attributes)
        log.debug("Update of %s %s, fields: %s", sobject_type, obj_id, sorted(payload))

    try:
        resp = connection.sobject_request(
            http_method, sobject_type, obj_id,
            payload=payload_to_json(payload) if payload is not None else None,
            fields=model.fields if method == 'read' else None)
    except Exception as exc:
        if working:
            model.tracker.restore(working)
            log.info("Restored dirty fields %s of %s %s after a failed update",
                     sorted(working), sobject_type, obj_id)
        if not isinstance(exc, Error):
            raise
        sync_error.send(sender=type(model), instance=model, method=method, exception=exc)
        if error is None:
            raise
        error(model, exc)
        return None

    if resp:
        model.set_fields(model.parse(resp), track=False)
    record_synced.send(sender=type(model), instance=model, method=method, response=resp)
    if success:
        success(model, resp)
    return resp
