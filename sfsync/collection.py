"""
Collection of records backed by a SOQL query

Usage:
    class OpenOpportunities(Collection):
        model = Opportunity
        query = "WHERE StageName = %s ORDER BY Name"
        query_params = ['Open']

    opportunities = OpenOpportunities(connection=connection)
    opportunities.fetch()

A query that starts with WHERE is completed by the `fields` and the
`sobject_type` of the model. All pages of the result are fetched before
the collection is reset (or extended) by one notification.
"""
import logging

from django.core.exceptions import ImproperlyConfigured

from sfsync.models import Model
from sfsync.rest.conversions import format_soql
from sfsync.rest.exceptions import Error
from sfsync.signals import collection_added, collection_reset, sync_error

log = logging.getLogger(__name__)


class Collection(object):
    model = Model
    query = None
    query_params = None
    connection = None

    def __init__(self, records=None, connection=None, query=None, query_params=None, model=None):
        if connection is not None:
            self.connection = connection
        if query is not None:
            self.query = query
        if query_params is not None:
            self.query_params = query_params
        if model is not None:
            self.model = model
        self.models = []
        if records:
            self.models = [self._prepare_model(x) for x in records]

    def __len__(self):
        return len(self.models)

    def __iter__(self):
        return iter(self.models)

    def __getitem__(self, index):
        return self.models[index]

    def __repr__(self):
        return '<%s: %d records>' % (type(self).__name__, len(self.models))

    def get(self, obj_id):
        """Get a model by its Id or None"""
        for model in self.models:
            if model.id == obj_id:
                return model
        return None

    def _prepare_model(self, attributes):
        if isinstance(attributes, Model):
            attributes.collection = self
            return attributes
        return self.model(attributes, connection=self.connection, collection=self, parse=True)

    def reset(self, records=()):
        """Replace all models by new models from `records`"""
        self.models = [self._prepare_model(x) for x in records]
        collection_reset.send(sender=type(self), instance=self, records=list(self.models))
        return self.models

    def add(self, records):
        """Append models from `records`"""
        added = [self._prepare_model(x) for x in records]
        self.models.extend(added)
        collection_added.send(sender=type(self), instance=self, records=added)
        return added

    def remove(self, model):
        if model in self.models:
            self.models.remove(model)
        model.collection = None

    def parse(self, records):
        return records

    def build_soql(self):
        """The complete SOQL. Configuration errors are raised before any request."""
        if self.query is None:
            raise ImproperlyConfigured('%s.query property is required!' % type(self).__name__)
        query = self.query
        if query.lstrip().lower().startswith('where'):
            model = self.model
            if model.fields is None:
                raise ImproperlyConfigured('With WHERE queries Model.fields property needs to be set!')
            if model.sobject_type is None:
                raise ImproperlyConfigured('With WHERE queries Model.sobject_type property needs to be set!')
            query = 'SELECT %s FROM %s %s' % (','.join(model.fields), model.sobject_type, query.lstrip())
        return format_soql(query, self.query_params)

    def get_connection(self):
        if self.connection is None:
            raise ImproperlyConfigured("%s has no connection." % type(self).__name__)
        return self.connection

    def fetch(self, success=None, error=None, add=False):
        """
        Fetch all pages of the query and reset the collection by them,
        or add them to the collection if `add` is True.

        Params:
            success:  callback success(collection, last_response_data)
            error:    callback error(collection, exception). The exception is
                      raised if no error callback is given.
        """
        soql = self.build_soql()
        connection = self.get_connection()
        log.debug("Fetch %s: %s", type(self).__name__, soql)
        records = []
        resp = None
        try:
            for resp in connection.query_all_pages(soql):
                records.extend(resp['records'])
        except Error as exc:
            sync_error.send(sender=type(self), instance=self, method='read', exception=exc)
            if error is None:
                raise
            error(self, exc)
            return None
        records = self.parse(records)
        if add:
            self.add(records)
        else:
            self.reset(records)
        if success:
            success(self, resp)
        return self.models
