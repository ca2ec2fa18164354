# sfsync
#

"""
oauth login support for the Salesforce API
"""

import base64
import hashlib
import hmac
import logging
import threading

import requests
from django.utils.module_loading import import_string
from requests.adapters import HTTPAdapter
from requests.auth import AuthBase

from sfsync.rest import get_max_retries, get_settings_dict
from sfsync.rest.exceptions import AuthenticationError

log = logging.getLogger(__name__)


class SalesforceAuth(AuthBase):
    """
    Authentication object that encapsulates all auth settings and holds the auth token.

    required public methods:
        __init__(db_alias, .. optional params, _session)  set what you think will be necessary
                            A non-default `_session` for `requests` can be provided,
                            especially for tests
        authenticate():     ask for a new token (customizable method)

        del_token():        forget token
    optional public (for your middleware)
        dynamic_start(access_token, instance_url):
                            replace the static values by the dynamic
                            (change the user and url dynamically)
        dynamic_end():      restore the previous static values
    private:
        get_auth():         get a token and url saved here or ask for a new
        reauthenticate():   force to ask for a new token if allowed (for
                            permanent authentication) (used after expired token error)
    callback for requests:
        __call__(r)

    The token is cached by the instance, not globally. Every connection
    that should share the token must share the auth object.

    http://docs.python-requests.org/en/latest/user/advanced/#custom-authentication
    """

    def __init__(self, db_alias, settings_dict=None, _session=None):
        """
        Set values for authentication
            Params:
                db_alias:  The connection alias e.g. the default alias 'salesforce'.
                settings_dict: Usually taken from settings.SALESFORCE_CONNECTIONS[db_alias]
                _session: only for tests
        """
        self.db_alias = db_alias
        self.dynamic = None
        self.settings_dict = settings_dict or get_settings_dict(db_alias)
        self._session = _session or requests.Session()
        self._auth_data = None
        self._lock = threading.Lock()

    @staticmethod
    def create_subclass_instance(db_alias, settings_dict=None, _session=None):
        """
        Create an instance of the auth class configured by settings_dict['AUTH'].

        The default is SalesforceRefreshTokenAuth if a 'REFRESH_TOKEN' is
        configured, otherwise SalesforcePasswordAuth.
        """
        settings_dict = settings_dict or get_settings_dict(db_alias)
        if settings_dict.get('AUTH'):
            auth_class = import_string(settings_dict['AUTH'])
        elif settings_dict.get('REFRESH_TOKEN'):
            auth_class = SalesforceRefreshTokenAuth
        else:
            auth_class = SalesforcePasswordAuth
        return auth_class(db_alias, settings_dict=settings_dict, _session=_session)

    def authenticate(self):
        """
        Authenticate to the Salesforce API with the provided credentials.

        This function will be called only if it is not in the cache.
        """
        raise NotImplementedError("The authenticate method should be subclassed.")

    def get_auth(self):
        """
        Cached value of authenticate() + the logic for the dynamic auth
        """
        if self.dynamic:
            return self.dynamic
        if self.settings_dict['USER'] == 'dynamic auth':
            return {'instance_url': self.settings_dict.get('HOST')}
        # if another thread is authenticating, wait for it to finish.
        with self._lock:
            if self._auth_data is None:
                self._auth_data = self.authenticate()
            return self._auth_data

    def del_token(self):
        with self._lock:
            self._auth_data = None
        self.dynamic = None

    def __call__(self, r):
        """Standard auth hook on the "requests" request r"""
        access_token = str(self.get_auth()['access_token'])
        r.headers['Authorization'] = 'OAuth %s' % access_token
        return r

    @property
    def can_reauthenticate(self):
        return self.dynamic is None and self.settings_dict['USER'] != 'dynamic auth'

    def reauthenticate(self):
        if not self.can_reauthenticate:
            # It is expected that with dynamic authentication we get a token that
            # is valid at least for a few future seconds, because we don't get
            # any password or permanent permission for it from the user.
            raise AuthenticationError("Dynamically authenticated connection can never reauthenticate.")
        self.del_token()
        return str(self.get_auth()['access_token'])

    @property
    def instance_url(self):
        return self.get_auth()['instance_url']

    def dynamic_start(self, access_token, instance_url=None):
        """
        Set the access token dynamically according to the current user.
        """
        self.dynamic = {'access_token': access_token,
                        'instance_url': instance_url or self.settings_dict.get('HOST')}

    def dynamic_end(self):
        """
        Clear the dynamic access token.
        """
        self.dynamic = None

    # -- helpers for OAuth2 flows

    def request_token(self, data):
        """Post the OAuth2 token request `data`, return the verified response data."""
        settings_dict = self.settings_dict
        url = ''.join([settings_dict['HOST'], '/services/oauth2/token'])

        log.info("attempting authentication to %s", settings_dict['HOST'])
        self._session.mount(settings_dict['HOST'], HTTPAdapter(max_retries=get_max_retries()))
        response = self._session.post(url, data=data)
        if response.status_code != 200:
            raise AuthenticationError("OAuth failed: %s: %s" % (settings_dict['USER'], response.text))
        response_data = response.json()
        self.verify_signature(response_data)
        log.info("successfully authenticated %s", settings_dict['USER'])
        return response_data

    def verify_signature(self, response_data):
        """Verify the HMAC-SHA256 signature of the token response"""
        calc_signature = (base64.b64encode(hmac.new(
            key=self.settings_dict['CONSUMER_SECRET'].encode('ascii'),
            msg=(response_data['id'] + response_data['issued_at']).encode('ascii'),
            digestmod=hashlib.sha256).digest())).decode('ascii')
        if calc_signature != response_data['signature']:
            raise AuthenticationError('Invalid auth signature received')


class SalesforcePasswordAuth(SalesforceAuth):
    """
    Attaches OAuth 2 Salesforce Password authentication to the `requests` Session
    """
    def authenticate(self):
        """
        Authenticate to the Salesforce API with the provided credentials (password).
        """
        settings_dict = self.settings_dict
        return self.request_token(dict(
            grant_type='password',
            client_id=settings_dict['CONSUMER_KEY'],
            client_secret=settings_dict['CONSUMER_SECRET'],
            username=settings_dict['USER'],
            password=settings_dict['PASSWORD'],
        ))


class SalesforceRefreshTokenAuth(SalesforceAuth):
    """
    Attaches OAuth 2 authentication by a long lived refresh token.

    The refresh token is obtained out of this package, typically by the web
    server flow, and configured as settings_dict['REFRESH_TOKEN'].
    """
    def authenticate(self):
        settings_dict = self.settings_dict
        response_data = self.request_token(dict(
            grant_type='refresh_token',
            client_id=settings_dict['CONSUMER_KEY'],
            client_secret=settings_dict['CONSUMER_SECRET'],
            refresh_token=settings_dict['REFRESH_TOKEN'],
        ))
        # Salesforce doesn't return a new refresh token by this flow
        response_data.setdefault('refresh_token', settings_dict['REFRESH_TOKEN'])
        return response_data


class MockAuth(SalesforceAuth):
    """Dummy authentication for offline tests, with a counter of logins."""

    def __init__(self, db_alias, settings_dict=None, _session=None):
        super(MockAuth, self).__init__(db_alias, settings_dict=settings_dict or {'USER': ''},
                                       _session=_session)
        self.authenticate_count = 0

    def authenticate(self):
        self.authenticate_count += 1
        return {'access_token': 'dummy token %d' % self.authenticate_count,
                'instance_url': 'mock://'}
