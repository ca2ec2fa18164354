# The error types keep the names of DB API 2 (PEP 249): Error, DatabaseError,
# OperationalError etc. Applications can catch them the same way as errors of
# any Python database driver, while the REST error details are kept in
# SalesforceError.data and .response.
from sfsync.rest import log
# pylint:disable=too-few-public-methods


class Error(Exception):
    pass


class InterfaceError(Error):
    pass  # should be raised directly


class DatabaseError(Error):
    pass


class SalesforceError(DatabaseError):
    """
    DatabaseError that usually gets detailed error information from SF response

    in the second parameter, decoded from REST, that frequently need not to be
    displayed.
    """
    def __init__(self, message='', data=None, response=None, verbose=False):
        if data:
            data_0 = data[0]
            separ = ' '
            if '\n' in message:
                separ = '\n  '
                message = message.replace('\n', separ)
            if 'errorCode' in data_0:
                message = data_0['errorCode'] + separ + message
            if data_0.get('fields'):
                message += separ + 'FIELDS: {}'.format(data_0['fields'])
        DatabaseError.__init__(self, message)
        self.data = data
        self.response = response
        self.verbose = verbose
        if verbose and response is not None:
            log.info("Error (debug details) %s\n%s", response.text,
                     response.__dict__)

    @property
    def status_code(self):
        return getattr(self.response, 'status_code', None)


class DataError(SalesforceError):
    pass


class OperationalError(SalesforceError):
    pass  # e.g. network, auth


class AuthenticationError(OperationalError):
    pass  # OAuth failed or the token has been rejected after a refresh


class IntegrityError(SalesforceError):
    pass  # e.g. foreign key


class InternalError(SalesforceError):
    pass


class ProgrammingError(SalesforceError):
    pass  # e.g soql syntax


class NotSupportedError(SalesforceError):
    pass
