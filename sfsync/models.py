# sfsync
#

"""
Salesforce record, synchronized by REST API

Usage:
    class Opportunity(Model):
        sobject_type = 'Opportunity'
        fields = ['Name', 'Amount', 'StageName']

    opportunity = Opportunity({'Id': '006...'}, connection=connection)
    opportunity.fetch()
    opportunity.set_field('StageName', 'Closed Won')
    opportunity.save()        # PATCH {"StageName": "Closed Won"}

All mutation of attributes must go through set_field() or set_fields(),
otherwise the modified fields are not sent by the next update.
"""
import logging

from django.core.exceptions import ImproperlyConfigured

from sfsync.rest.conversions import fix_data_type
from sfsync.rest.exceptions import InterfaceError
from sfsync.signals import record_changed, record_destroyed
from sfsync.sync import sync
from sfsync.tracker import DirtyFieldTracker

log = logging.getLogger(__name__)

MISSING = object()


class Model(object):
    """
    A record: a mapping from field names to values with the identity field `Id`.

    Class attributes for subclasses:
        sobject_type:  API name of the object, e.g. 'Account'. It is taken from
                       the first parsed response if not set.
        fields:        list of field names used for fetch and for WHERE queries
        connection:    default connection (sfsync.rest.connection.Connection)
    """
    id_attribute = 'Id'
    sobject_type = None
    fields = None
    connection = None

    def __init__(self, attributes=None, connection=None, collection=None, parse=False):
        self.attributes = {}
        self.tracker = DirtyFieldTracker(id_field=self.id_attribute)
        self.collection = collection
        if connection is not None:
            self.connection = connection
        if parse:
            attributes = self.parse(attributes)
        if attributes:
            self.set_fields(attributes, track=False)

    def __repr__(self):
        return '<%s: %s %s>' % (type(self).__name__, self.sobject_type, self.id or '(new)')

    def __getitem__(self, name):
        return self.attributes[name]

    def __contains__(self, name):
        return name in self.attributes

    def get(self, name, default=None):
        return self.attributes.get(name, default)

    @property
    def id(self):
        return self.attributes.get(self.id_attribute)

    @property
    def is_new(self):
        """True until the identity field is assigned by the server"""
        return not self.id

    @property
    def pending_changes(self):
        return self.tracker.pending

    # -- mutation

    def set_field(self, name, value, track=True):
        return self.set_fields({name: value}, track=track)

    def set_fields(self, attributes, track=True):
        """
        Set values of fields. The names are added to pending changes
        of an existing record if `track` is True.
        """
        if not attributes:
            return self
        tracked = track and not self.is_new
        changes = {name: value for name, value in attributes.items()
                   if self.attributes.get(name, MISSING) != value}
        self.attributes.update(attributes)
        # recorded after the values are set: a snapshot taken in between
        # leaves the names pending instead of sending old values
        if tracked:
            self.tracker.record(attributes)
        if changes:
            record_changed.send(sender=type(self), instance=self, changes=changes, tracked=track)
        return self

    def to_json(self):
        """The full payload for create (without the identity field)"""
        payload = dict(self.attributes)
        payload.pop(self.id_attribute, None)
        return payload

    # -- persistence

    def get_connection(self):
        connection = self.connection
        if connection is None and self.collection is not None:
            connection = self.collection.connection
        if connection is None:
            raise ImproperlyConfigured("%s has no connection." % type(self).__name__)
        return connection

    def get_sobject_type(self):
        if not self.sobject_type:
            raise ImproperlyConfigured("%s.sobject_type property needs to be set!" % type(self).__name__)
        return self.sobject_type

    def save(self, attributes=None, success=None, error=None, track=True):
        """
        Create a new record by all fields or update an existing one by the
        modified fields.
        """
        if attributes:
            self.set_fields(attributes, track=track)
        method = 'create' if self.is_new else 'update'
        return sync(method, self, success=success, error=error)

    def fetch(self, success=None, error=None):
        """Read the record (the `fields` only if they are set). It is not tracked as a change."""
        if self.is_new:
            raise InterfaceError("Can not fetch a record without %s." % self.id_attribute)
        return sync('read', self, success=success, error=error)

    def destroy(self, success=None, error=None):
        """Delete the record. A new record is only removed from its collection."""
        if self.is_new:
            if self.collection is not None:
                self.collection.remove(self)
            return False
        outcome = {}

        def on_success(model, resp):
            outcome['deleted'] = True
            if self.collection is not None:
                self.collection.remove(self)
            record_destroyed.send(sender=type(self), instance=self)
            if success:
                success(model, resp)

        sync('delete', self, success=on_success, error=error)
        return outcome.get('deleted', False)

    def parse(self, resp):
        """Convert a response of Salesforce to attributes"""
        if resp is None:
            return resp
        result = dict(resp)
        if 'id' in result:
            result[self.id_attribute] = result.pop('id')
        if 'attributes' in result:
            if self.sobject_type is None:
                self.sobject_type = result['attributes']['type']
            del result['attributes']
        result.pop('success', None)
        if isinstance(result.get('errors'), list):
            del result['errors']
        return {name: fix_data_type(value) for name, value in result.items()}
