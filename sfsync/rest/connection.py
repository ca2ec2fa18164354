"""
Connection to Salesforce REST API

It is the only place where requests are sent to the network. The models and
collections get an authenticated request primitive, a query with
continuation and URL helpers from here.

Every thread should use its own connection, because waiting on a network
connection for query response would be a bottle neck. A connection is
created by `connect(**params)` or it is created and shared in the current
thread by `get_connection(alias)`.
"""
import json
import logging
import threading
from urllib.parse import urlencode

import requests
from django.conf import settings
from requests.adapters import HTTPAdapter

import sfsync
from sfsync.auth import SalesforceAuth
from sfsync.rest import get_max_retries, get_settings_dict
from sfsync.rest.exceptions import (  # NOQA pylint: disable=unused-import
    Error, DatabaseError, DataError, OperationalError, AuthenticationError, IntegrityError,
    InternalError, ProgrammingError, NotSupportedError, SalesforceError)

log = logging.getLogger(__name__)

APPLICATION_JSON = 'application/json'

# http methods by the name of the model operation
METHOD_MAP = {
    'create': 'POST',
    'update': 'PATCH',
    'delete': 'DELETE',
    'read': 'GET',
}

# error codes reported in the json body of 4xx responses
ERROR_CLASSES = {
    'MALFORMED_QUERY': ProgrammingError,
    'INVALID_FIELD': ProgrammingError,
    'INVALID_TYPE': ProgrammingError,
    'INVALID_FIELD_FOR_INSERT_UPDATE': DataError,
    'REQUIRED_FIELD_MISSING': DataError,
    'STRING_TOO_LONG': DataError,
    'FIELD_CUSTOM_VALIDATION_EXCEPTION': DataError,
    'DUPLICATE_VALUE': IntegrityError,
    'INVALID_CROSS_REFERENCE_KEY': IntegrityError,
    'ENTITY_IS_DELETED': IntegrityError,
    'METHOD_NOT_ALLOWED': NotSupportedError,
}

connect_lock = threading.Lock()
thread_connections = threading.local()


class Connection(object):
    """
    parameters:
        settings_dict:  like settings.SALESFORCE_CONNECTIONS['salesforce']
        alias:          the name of connection in settings
        auth:           an instance of SalesforceAuth, e.g. shared by more connections
        session:        a requests session, only for tests
    """
    # pylint:disable=too-many-instance-attributes

    def __init__(self, settings_dict=None, alias=None, auth=None, session=None):
        self.alias = alias or getattr(settings, 'SALESFORCE_DB_ALIAS', 'salesforce')
        if settings_dict is None:
            settings_dict = auth.settings_dict if auth else get_settings_dict(self.alias)
        self.settings_dict = settings_dict
        self.api_ver = sfsync.API_VERSION
        self.debug_silent = False
        self.request_count = 0

        self._sf_auth = auth or SalesforceAuth.create_subclass_instance(self.alias,
                                                                        settings_dict=settings_dict)
        self._sf_session = session

        # The SFDC is connected as late as possible by default. Some tests
        # don't require a connection.
        if not getattr(settings, 'SF_LAZY_CONNECT', True):
            self.make_session()

    # -- private attributes

    @property
    def sf_auth(self):
        return self._sf_auth

    @property
    def sf_session(self):
        if self._sf_session is None:
            self.make_session()
        return self._sf_session

    @property
    def proxy_url(self):
        return self.settings_dict.get('PROXY_URL')

    def make_session(self):
        """Authenticate and get the name of assigned SFDC data server"""
        with connect_lock:
            if self._sf_session is None:
                sf_session = requests.Session()
                sf_session.auth = self._sf_auth
                sf_instance_url = sf_session.auth.instance_url  # property: usually get by login request
                sf_requests_adapter = HTTPAdapter(max_retries=get_max_retries())
                sf_session.mount(self.proxy_url or sf_instance_url, sf_requests_adapter)
                sf_session.headers.update({'X-User-Agent': 'sfsync/%s' % sfsync.__version__})
                self._sf_session = sf_session

    def rest_api_url(self, *url_parts, api_ver=None):
        """Join the URL of REST_API

        parameters:
            url_parts:  strings that are joined to the url by "/".
                a REST url like https://na1.salesforce.com/services/data/v59.0/
                is usually added, but not if the first string is a complete url
            api_ver:  API version that should be used instead of connection.api_ver
                default. A special api_ver="" can be used to omit api version
                (for request to ask for available api versions)
        Examples: self.rest_api_url("query/?q=select+id+from+Organization")
                  self.rest_api_url("sobjects", "Contact", id, api_ver="45.0")
                  self.rest_api_url(api_ver="")   # versions request
        Output:

                  https://na1.salesforce.com/services/data/v59.0/query/?q=select+id+from+Organization
                  https://na1.salesforce.com/services/data/v45.0/sobjects/Contact/003DD00000000XYAAA
                  https://na1.salesforce.com/services/data
        """
        if url_parts and '://' in url_parts[0]:
            return '/'.join(url_parts)
        api_ver = api_ver if api_ver is not None else self.api_ver
        base = self.sf_auth.instance_url
        prefix = 'services/data' + ('/v{api_ver}'.format(api_ver=api_ver) if api_ver else '')
        return '/'.join((base, prefix) + url_parts)

    def raw_request(self, method, url, **kwargs):
        """Send the request, eventually through a proxy. Network errors are converted."""
        if self.proxy_url:
            headers = dict(kwargs.pop('headers', None) or {})
            headers['SalesforceProxy-Endpoint'] = url
            kwargs['headers'] = headers
            url = self.proxy_url
        try:
            return self.sf_session.request(method, url, **kwargs)
        except requests.exceptions.Timeout:
            raise OperationalError("Timeout, URL=%s" % url)
        except requests.exceptions.RequestException as exc:
            raise OperationalError("%s: %s, URL=%s" % (type(exc).__name__, exc, url))

    def handle_api_exceptions(self, method, *url_parts, **kwargs):
        """Call REST API and handle exceptions
        Params:
            method:  'HEAD', 'GET', 'POST', 'PATCH' or 'DELETE'
            url_parts: like in rest_api_url() method
            api_ver:   like in rest_api_url() method
            kwargs: other parameters passed to requests.request,
                but the usual important parameters are only
                    data=json.dumps(...)
                    headers={'Content-Type': 'application/json'}
        """
        assert method in ('HEAD', 'GET', 'POST', 'PATCH', 'DELETE')
        api_ver = kwargs.pop('api_ver', None)
        url = self.rest_api_url(*url_parts, api_ver=api_ver)
        # The 'verify' option is about verifying TLS certificates
        kwargs_in = {'timeout': getattr(settings, 'SALESFORCE_QUERY_TIMEOUT', (4, 15)),
                     'verify': True}
        kwargs_in.update(kwargs)
        log.debug('Request API URL: %s', url)
        self.request_count += 1
        response = self.raw_request(method, url, **kwargs_in)
        if response.status_code == 401:  # Unauthorized
            # Reauthenticate and retry once (expired or invalid session ID or OAuth)
            data = error_data(response)
            if data and data[0].get('errorCode') == 'INVALID_SESSION_ID':
                log.info("Session expired, reauthenticating %s", self.alias)
                self.sf_auth.reauthenticate()
                self.request_count += 1
                response = self.raw_request(method, url, **kwargs_in)
                if response.status_code == 401:
                    raise AuthenticationError("Rejected after reauthentication, URL=%s" % url,
                                              error_data(response), response)
        return self.raise_errors(response, method, url)

    def raise_errors(self, response, method, url):
        """Return the response if it is OK or raise an exception by error code"""
        # status codes help
        # https://developer.salesforce.com/docs/atlas.en-us.api_rest.meta/api_rest/errorcodes.htm
        if response.status_code <= 304:
            # OK (200, 201, 204, 300, 304)
            return response

        # Error (400, 401, 403, 404, 405, 415, 500)
        verbose = not self.debug_silent
        data = error_data(response)
        if data is None:
            raise OperationalError("HTTP error code %d: %s" % (response.status_code, response.text),
                                   response=response)
        # Other Errors are reported in the json body
        data_0 = data[0]
        error_code = data_0.get('errorCode', '')
        if response.status_code == 404:  # ResourceNotFound
            if method == 'DELETE' and error_code in ('ENTITY_IS_DELETED', 'INVALID_CROSS_REFERENCE_KEY'):
                # It is a delete command and the object is in trash bin or
                # completely deleted or it only could be a valid Id for this type
                # then is ignored similarly to delete by a classic database query:
                # DELETE FROM xy WHERE id = 'something_deleted_yet'
                log.debug("Ignored %s of a deleted object, URL=%s", error_code, url)
                return None
            # if this Id can not be ever valid.
            raise SalesforceError("Couldn't connect to API (404): %s, URL=%s"
                                  % (response.text, url), data, response, verbose)
        if response.status_code == 401:
            raise AuthenticationError(data_0.get('message', ''), data, response, verbose)
        if response.status_code >= 500:
            raise InternalError(data_0.get('message', ''), data, response, verbose)
        if error_code == 'METHOD_NOT_ALLOWED':  # 405
            raise NotSupportedError('%s: %s %s' % (data_0['message'], method, url), data, response, verbose)
        error_class = ERROR_CLASSES.get(error_code, SalesforceError)
        raise error_class(data_0.get('message', '%s' % data), data, response, verbose)

    # -- requests used by models and collections

    def sobject_request(self, method, sobject_type, obj_id=None, payload=None, fields=None):
        """Request an sobject URL with a json payload. Return the decoded response or None"""
        url_parts = ['sobjects', sobject_type]
        if obj_id:
            url_parts.append(obj_id)
        if fields:
            url_parts[-1] += '?' + urlencode({'fields': ','.join(fields)}, safe=',')
        kwargs = {}
        if payload is not None:
            kwargs['data'] = json.dumps(payload)
            kwargs['headers'] = {'Content-Type': APPLICATION_JSON}
        response = self.handle_api_exceptions(method, *url_parts, **kwargs)
        if response is None or not response.text:
            return None
        return response.json()

    def query(self, soql):
        """Get the first page of a query result (a dict with 'records' and 'done')"""
        url = 'query/?' + urlencode({'q': soql})
        return self.handle_api_exceptions('GET', url).json()

    def query_more(self, next_records_url):
        """Get the next page of a query result by the 'nextRecordsUrl' of the previous page"""
        url = self.sf_auth.instance_url + next_records_url
        return self.handle_api_exceptions('GET', url).json()

    def query_all_pages(self, soql):
        """Iterate over all pages of a query result"""
        resp = self.query(soql)
        yield resp
        while resp.get('nextRecordsUrl'):
            resp = self.query_more(resp['nextRecordsUrl'])
            yield resp

    def versions_request(self):
        """List Available REST API Versions"""
        return self.handle_api_exceptions('GET', api_ver='').json()


def error_data(response):
    """The decoded list of errors from a json error response or None"""
    if 'json' not in response.headers.get('Content-Type', ''):
        return None
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        data = [data]
    return data or None


def connect(**params):
    return Connection(**params)


def get_connection(alias=None, **params):
    """Get a connection shared in the current thread"""
    alias = alias or getattr(settings, 'SALESFORCE_DB_ALIAS', 'salesforce')
    if not hasattr(thread_connections, alias):
        setattr(thread_connections, alias, connect(alias=alias, **params))
    return getattr(thread_connections, alias)
