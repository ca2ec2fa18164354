"""Mock requests for Salesforce REST API (for offline tests)

Principial differences to other packages: (therefore not used "requests-mock" etc.)
- The same request should have different responses before and after
  insert, update, delete, therefore the expected requests are an ordered list
- A request can run a side effect before its response is returned, e.g. to
  modify a record while the request is "in flight"
- This module has two modes, by settings.SF_MOCK_MODE:
  "playback" mode useful for running the tests fast (default)
  "record" mode useful for re-writing small integration tests to create mock
      tests. The requests are sent to Salesforce by a real connection and
      printed in the format of MockJsonRequest.

Parameters of MockRequest
    request_type: (None, 'application/json',... '*') The type '*' is for
        requests where the type and data should not be checked.
    req:  The expected request data (str or None)
    resp: The response data (str or None)
"""
import json

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase

from sfsync.auth import MockAuth
from sfsync.rest.connection import Connection

APPLICATION_JSON = 'application/json;charset=UTF-8'


class MockRequestsSession(object):
    """Prepare mock session with expected requests + responses history

    expected:   iterable of MockJsonRequest
    testcase:  testcase object (for consistent assertion)
    old_connection:  a real connection, only for the "record" mode
    """

    def __init__(self, testcase, expected=(), old_connection=None):
        self.index = 0
        self.testcase = testcase
        self.expected = list(expected)
        self.old_connection = old_connection

    def add_expected(self, expected_requests):
        if isinstance(expected_requests, (list, tuple)):
            self.expected.extend(expected_requests)
        else:
            self.expected.append(expected_requests)

    def request(self, method, url, data=None, **kwargs):
        """Assert the request equals the expected, return historical response"""
        mode = getattr(settings, 'SF_MOCK_MODE', 'playback')
        if mode == 'playback':
            self.testcase.assertLess(self.index, len(self.expected),
                                     "Unexpected request %s %s" % (method, url))
            expected = self.expected[self.index]
            msg = "Difference at request index %d (from %d)" % (self.index, len(self.expected))
            self.index += 1
            return expected.request(method, url, data=data, testcase=self.testcase,
                                    msg=msg, **kwargs)
        elif mode == 'record':
            if not self.old_connection:
                raise ImproperlyConfigured(
                    'If set SF_MOCK_MODE="record" then a real connection must be '
                    'passed to MockRequestsSession.')
            new_url = url.replace('mock://', self.old_connection.sf_auth.instance_url)
            response = self.old_connection.sf_session.request(method, new_url, data=data, **kwargs)
            output = ["%r, %r" % (method, url)]
            if data:
                output.append("req=%r" % data)
            if response.text:
                output.append("resp=%r" % response.text)
            if response.status_code != 200:
                output.append("status_code=%d" % response.status_code)
            print("=== MOCK RECORD {testcase}\nMockJsonRequest(\n    {params})\n===".format(
                  testcase=self.testcase, params=',\n    '.join(output)))
            return response
        else:
            raise NotImplementedError("Not implemented SF_MOCK_MODE=%s" % mode)

    def get(self, url, **kwargs):
        return self.request('GET', url, **kwargs)

    def post(self, url, data=None, **kwargs):
        return self.request('POST', url, data=data, **kwargs)

    def patch(self, url, data=None, **kwargs):
        return self.request('PATCH', url, data=data, **kwargs)

    def delete(self, url, **kwargs):
        return self.request('DELETE', url, **kwargs)

    def mount(self, prefix, adapter):
        pass


class MockRequest(object):
    """Recorded Mock request to be compared and response to be used

    for some unit tests offline
    If the parameter 'request_type' is '*' then the request is not tested
    """
    default_type = None

    def __init__(self, method, url,
                 req=None, resp=None,
                 request_type=None, response_type=None,
                 status_code=200, side_effect=None):
        self.method = method
        self.url = url
        self.request_data = req
        self.response_data = resp
        self.request_type = request_type or (self.default_type if method not in ('GET', 'DELETE') else '') or ''
        self.response_type = response_type
        self.status_code = status_code
        self.side_effect = side_effect

    def request(self, method, url, data=None, testcase=None, **kwargs):
        """Compare the request to the expected. Return the expected response."""
        if testcase is None:
            raise TypeError("Required keyword argument 'testcase' not found")
        msg = kwargs.pop('msg', None)
        testcase.assertEqual(method.upper(), self.method.upper(), msg=msg)
        testcase.assertEqual(url, self.url, msg=msg)
        request_type = (kwargs.get('headers') or {}).get('Content-Type', '')
        if 'json' in self.request_type:
            testcase.assertJSONEqual(data, self.request_data, msg=msg)
        elif self.request_type != '*':
            testcase.assertEqual(data, self.request_data, msg=msg)
        if self.request_type != '*':
            testcase.assertEqual(request_type.split(';')[0], self.request_type.split(';')[0], msg=msg)
        if self.side_effect:
            self.side_effect()
        if self.response_data and self.default_type == APPLICATION_JSON:
            response_class = MockJsonResponse
        else:
            response_class = MockResponse
        return response_class(self.response_data,
                              status_code=self.status_code,
                              resp_content_type=self.response_type)


class MockJsonRequest(MockRequest):
    """Mock JSON request/response for some unit tests offline"""
    default_type = APPLICATION_JSON


class MockResponse(object):
    """Mock response for some unit tests offline"""
    default_type = None

    def __init__(self, text, resp_content_type=None, status_code=200):
        self.text = text or ''
        self.status_code = status_code
        self.content_type = resp_content_type if resp_content_type is not None else self.default_type

    def json(self, parse_float=None):
        return json.loads(self.text, parse_float=parse_float)

    @property
    def headers(self):
        return {'Content-Type': self.content_type} if self.content_type else {}


class MockJsonResponse(MockResponse):
    default_type = APPLICATION_JSON


class MockTestCase(SimpleTestCase):
    """
    Test case that uses recorded requests/responses instead of network

    The connection `self.sf_connection` is authenticated by MockAuth
    to the instance 'mock://'.
    """
    def setUp(self):
        super(MockTestCase, self).setUp()
        self.mock_auth = MockAuth('mock')
        self.mock_session = MockRequestsSession(testcase=self)
        self.sf_connection = Connection(alias='mock', auth=self.mock_auth, session=self.mock_session)

    def tearDown(self):
        session = self.mock_session
        if self._outcome.success:
            self.assertEqual(session.index, len(session.expected), "Not all expected requests has been used")
        super(MockTestCase, self).tearDown()

    def mock_add_expected(self, expected_requests):
        self.mock_session.add_expected(expected_requests)
