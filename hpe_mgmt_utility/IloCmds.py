import logging

import requests

from hpe_mgmt_utility.RemoteSession import RemoteSession

_LOGGER = logging.getLogger(__name__)

DISCOVERY_TIMEOUT = 5
FIRMWARE_TIMEOUT = 120


def discover_ilo(host, timeout=DISCOVERY_TIMEOUT):
    '''
    Query the unauthenticated Redfish service root of an iLO.
    Returns the decoded document, or None while the iLO does not answer.
    '''
    url = f'https://{host}{endpoints["service_root"]}'
    try:
        response = requests.get(url, timeout=timeout, verify=False)
    except requests.RequestException as err:
        _LOGGER.debug('%s: discovery failed: %s', host, err)
        return None
    if response.status_code != 200:
        return None
    try:
        return response.json()
    except ValueError:
        return None


class IloCmds:
    def __init__(self, host, user, pw, session=None):
        self.host = host
        if session is None:
            session = RemoteSession(host, endpoints['create_session'], user, pw, 'x-auth-token')
        self.rmt_session = session

    def close_session(self):
        self.rmt_session.close_session()

    def get_firmware_version(self):
        manager = self.rmt_session.get(endpoints['manager_info'])
        return manager.get('FirmwareVersion', '')

    def update_firmware(self, fw_update_file):
        # payload example: {"ImageURI": "http://10.0.0.5/ilo5_278.bin"}
        _LOGGER.info('%s: flashing iLO firmware from %s', self.host, fw_update_file)
        return self.rmt_session.post(endpoints['simple_update'], {'ImageURI': fw_update_file},
                                     timeout=FIRMWARE_TIMEOUT)

    def get_power_state(self):
        system = self.rmt_session.get(endpoints['system_info'])
        return system.get('PowerState', '')

    def power(self, resettype):
        # ForceOff, On, ForceRestart, GracefulRestart, GracefulShutdown
        return self.rmt_session.post(endpoints['power'], {'ResetType': resettype})

    def set_network(self, hostname, domain, dns_servers, ntp_servers):
        payload = {
            'HostName': hostname,
            'Oem': {'Hpe': {
                'DomainName': domain,
                'IPv4': {'DNSServers': list(dns_servers)},
            }},
        }
        self.rmt_session.patch(endpoints['bmc_ethernet'], payload)
        if ntp_servers:
            self.rmt_session.patch(endpoints['date_time'], {'StaticNTPServers': list(ntp_servers)})

    def reset_ilo(self):
        return self.rmt_session.post(endpoints['bmc_reset'], {'ResetType': 'GracefulRestart'})

    def set_bios_attributes(self, attributes):
        return self.rmt_session.patch(endpoints['bios_settings'], {'Attributes': dict(attributes)})

    def set_boot_order(self, boot_order):
        return self.rmt_session.patch(endpoints['system_info'], {'Boot': {'BootOrder': list(boot_order)}})

    def get_virtual_media(self):
        return self.rmt_session.get(endpoints['virtual_cd'])

    def insert_virtual_media(self, image_url):
        payload = {'Image': image_url, 'Inserted': True, 'WriteProtected': True}
        return self.rmt_session.post(endpoints['insert_media'], payload)

    def set_boot_on_next_reset(self, enabled=True):
        payload = {'Oem': {'Hpe': {'BootOnNextServerReset': enabled}}}
        return self.rmt_session.patch(endpoints['virtual_cd'], payload)


endpoints = {
    'service_root'          : '/redfish/v1/',
    'create_session'        : '/redfish/v1/SessionService/Sessions/',
    'system_info'           : '/redfish/v1/Systems/1/',
    'manager_info'          : '/redfish/v1/Managers/1/',
    'power'                 : '/redfish/v1/Systems/1/Actions/ComputerSystem.Reset/',
    'bmc_reset'             : '/redfish/v1/Managers/1/Actions/Manager.Reset/',
    'bmc_ethernet'          : '/redfish/v1/Managers/1/EthernetInterfaces/1/',
    'date_time'             : '/redfish/v1/Managers/1/DateTime/',
    'simple_update'         : '/redfish/v1/UpdateService/Actions/UpdateService.SimpleUpdate/',
    'bios_settings'         : '/redfish/v1/Systems/1/Bios/Settings/',
    'virtual_cd'            : '/redfish/v1/Managers/1/VirtualMedia/2/',
    'insert_media'          : '/redfish/v1/Managers/1/VirtualMedia/2/Actions/VirtualMedia.InsertMedia/',
}
