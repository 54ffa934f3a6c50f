import json
import logging

import requests
import urllib3

from hpe_mgmt_utility.errors import RemoteSessionError, VendorCallError

urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

_LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class RemoteSession:
    """Authenticated Redfish session against an iLO.

    ``token_header`` names the header the session token is returned in and
    sent back with (``x-auth-token`` on iLO).
    """

    def __init__(self, host, endpoint, user, pw, token_header, timeout=DEFAULT_TIMEOUT):
        self.host = host
        self.endpoint = endpoint
        self.token_header = token_header
        self.timeout = timeout
        self.session_location = None
        self.token = None
        self.session = None
        self.base_url = f'https://{host}'

        self.create_session(user, pw)

    def create_session(self, user, pw):
        login_payload = {'UserName': user, 'Password': pw}
        header = {'content-type': 'application/json'}
        self.session = requests.Session()
        self.session.verify = False

        url = f'{self.base_url}{self.endpoint}'
        try:
            response = self.session.post(url, headers=header, data=json.dumps(login_payload),
                                         timeout=self.timeout)
        except requests.RequestException as err:
            self.session.close()
            raise RemoteSessionError(self.host, str(err)) from err

        status = response.status_code
        if status not in (200, 201):
            self.session.close()
            raise RemoteSessionError(self.host, f'Unable to create session. Check credentials. Status code:{status}')

        self.token = response.headers.get(self.token_header)
        if not self.token:
            self.session.close()
            raise RemoteSessionError(self.host, 'Login succeeded but no session token was returned')

        self.session_location = response.headers.get('location')
        self.session.headers.update({self.token_header: self.token})          # Save token in session header
        _LOGGER.debug('%s: session created', self.host)

    def url_for(self, path):
        if path.startswith('https://'):
            return path
        return f'{self.base_url}{path}'

    def request(self, method, path, payload=None, timeout=None):
        url = self.url_for(path)
        kwargs = {'timeout': timeout or self.timeout}
        if payload is not None:
            kwargs['headers'] = {'content-type': 'application/json'}
            kwargs['data'] = json.dumps(payload)
        response = self.session.request(method, url, **kwargs)
        if response.status_code >= 400:
            raise VendorCallError(method, url, response.status_code, response.text)
        _LOGGER.debug('%s %s -> %s', method, url, response.status_code)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    def get(self, path, timeout=None):
        return self.request('GET', path, timeout=timeout)

    def post(self, path, payload, timeout=None):
        return self.request('POST', path, payload, timeout=timeout)

    def patch(self, path, payload, timeout=None):
        return self.request('PATCH', path, payload, timeout=timeout)

    def delete(self, path, timeout=None):
        return self.request('DELETE', path, timeout=timeout)

    def close_session(self):
        if self.session is None:
            return
        target = self.session_location
        if target:
            try:
                response = self.session.delete(self.url_for(target), timeout=self.timeout)
                if response.status_code not in (200, 204):
                    _LOGGER.warning('%s: failed to close session. Status code: %s', self.host, response.status_code)
            except requests.RequestException as err:
                _LOGGER.warning('%s: error closing session: %s', self.host, err)
        else:
            _LOGGER.debug('%s: no session location found', self.host)
        self.session.close()
        self.session = None
