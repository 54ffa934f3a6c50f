import logging

from hpeOneView.exceptions import HPEOneViewException
from hpeOneView.oneview_client import OneViewClient

from hpe_mgmt_utility.errors import RemoteSessionError, VendorCallError

_LOGGER = logging.getLogger(__name__)

API_VERSION = 800


class OneViewCmds:
    """Read-only OneView queries used by the report collectors.

    Wraps an ``hpeOneView`` ``OneViewClient``. SDK failures surface as
    ``RemoteSessionError`` at login and ``VendorCallError`` afterwards so the
    collectors only deal with this package's exceptions.
    """

    def __init__(self, host, user, pw, api_version=API_VERSION, client=None):
        self.host = host
        if client is None:
            config = {
                'ip': host,
                'credentials': {'userName': user, 'password': pw},
                'api_version': api_version,
                'ssl_certificate': False,
            }
            try:
                client = OneViewClient(config)
            except (HPEOneViewException, OSError) as err:
                raise RemoteSessionError(host, f'Unable to create session. Check credentials. {err}') from err
            _LOGGER.debug('%s: session created', host)
        self.client = client
        self._interconnect_resources = {}

    def close(self):
        try:
            self.client.connection.logout()
        except (HPEOneViewException, OSError) as err:
            _LOGGER.warning('%s: error closing session: %s', self.host, err)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _call(self, target, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (HPEOneViewException, OSError) as err:
            raise VendorCallError('GET', f'https://{self.host}{target}', None, str(err)) from err

    def _find_by_name(self, resources, path, name):
        resource = self._call(f'{path}?name={name}', resources.get_by_name, name)
        return [] if resource is None else [resource.data]

    def _one_by_name(self, resources, path, name, kind):
        matches = self._find_by_name(resources, path, name)
        if not matches:
            raise VendorCallError('GET', f'https://{self.host}{path}?name={name}', 404, f'{kind} {name} not found')
        return matches[0]

    def get_interconnects(self):
        return self._call(endpoints['interconnects'], self.client.interconnects.get_all)

    def get_interconnect(self, name):
        return self._one_by_name(self.client.interconnects, endpoints['interconnects'], name, 'Interconnect')

    def get_enclosures(self, name=None):
        if name:
            return self._find_by_name(self.client.enclosures, endpoints['enclosures'], name)
        return self._call(endpoints['enclosures'], self.client.enclosures.get_all)

    def get_enclosure(self, name):
        return self._one_by_name(self.client.enclosures, endpoints['enclosures'], name, 'Enclosure')

    def get_enclosure_interconnects(self, enclosure):
        uri = enclosure['uri']
        return [ic for ic in self.get_interconnects() if ic.get('enclosureUri') == uri]

    def get_port_statistics(self, interconnect, port_name):
        uri = interconnect['uri']
        resource = self._interconnect_resources.get(uri)
        if resource is None:
            resource = self._call(uri, self.client.interconnects.get_by_uri, uri)
            self._interconnect_resources[uri] = resource
        return self._call(f'{uri}/statistics/{port_name}', resource.get_statistics, port_name)

    def get_uplink_set(self, uri):
        return self._call(uri, self.client.uplink_sets.get_by_uri, uri).data

    def get_network(self, uri):
        return self._call(uri, self.client.ethernet_networks.get_by_uri, uri).data

    def get_server_hardware(self, name=None):
        if name:
            return self._find_by_name(self.client.server_hardware, endpoints['server_hardware'], name)
        return self._call(endpoints['server_hardware'], self.client.server_hardware.get_all)

    def get_entitlement(self, resource):
        # no SDK resource covers entitlement; go through the client's connection
        uri = f"{resource['uri']}{endpoints['entitlement']}"
        return self._call(uri, self.client.connection.get, uri)


endpoints = {
    'interconnects'     : '/rest/interconnects',
    'enclosures'        : '/rest/enclosures',
    'server_hardware'   : '/rest/server-hardware',
    'entitlement'       : '/support/entitlement',                     # appended to a server or enclosure uri
}
