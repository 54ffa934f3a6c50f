import logging

_LOGGER = logging.getLogger(__name__)

FLEXFABRIC_MODEL = 'FlexFabric'

PORT_INFO_FIELDS = [
    'Interconnect', 'Port', 'ConnectorType', 'Speed', 'UplinkSet', 'VLANs',
    'RemoteSystemName', 'RemoteManagementAddress', 'RemotePortId', 'RemoteChassisId',
]

WARRANTY_FIELDS = [
    'Name', 'Type', 'Model', 'PartNumber', 'SerialNumber',
    'EntitlementStatus', 'ObligationId', 'ObligationEndDate',
]


def port_stats_fields(megabits):
    unit = 'Mb/s' if megabits else 'Kb/s'
    return ['Interconnect', 'Port', f'Rx {unit}', f'Tx {unit}', 'Rx Packets/s', 'Tx Packets/s']


class ReportParse:

    def is_flexfabric(interconnect):
        return FLEXFABRIC_MODEL in (interconnect.get('model') or '')

    def is_ethernet_uplink(port):
        return (port.get('portType') == 'Uplink'
                and port.get('portStatus') == 'Linked'
                and 'Ethernet' in (port.get('capability') or []))

    def uplink_ports(interconnect):
        ports = []
        for port in interconnect.get('ports') or []:
            if ReportParse.is_ethernet_uplink(port):
                ports.append(port)
            else:
                _LOGGER.debug('%s: skipping port %s', interconnect.get('name'), port.get('portName'))
        return ports

    def join_vlans(networks):
        return ', '.join(str(network.get('vlanId')) for network in networks)

    def first_sample(value):
        if value is None:
            return ''
        return str(value).split(':')[0].strip()

    def convert_rate(value, megabits):
        token = ReportParse.first_sample(value)
        if not megabits or token == '':
            return token
        return round(int(token) / 1024, 1)

    def port_info_record(interconnect, port, uplink_set_name, vlans):
        neighbor = port.get('neighbor') or {}
        values = [
            interconnect.get('name'),
            port.get('portName'),
            port.get('connectorType', ''),
            port.get('operationalSpeed', ''),
            uplink_set_name,
            vlans,
            neighbor.get('remoteSystemName', ''),
            neighbor.get('remoteMgmtAddress', ''),
            neighbor.get('remotePortId', ''),
            neighbor.get('remoteChassisId', ''),
        ]
        return dict(zip(PORT_INFO_FIELDS, values))

    def port_stats_record(interconnect, port_name, stats, megabits):
        advanced = (stats or {}).get('advancedStatistics') or {}
        values = [
            interconnect.get('name'),
            port_name,
            ReportParse.convert_rate(advanced.get('receiveKilobitsPerSec'), megabits),
            ReportParse.convert_rate(advanced.get('transmitKilobitsPerSec'), megabits),
            ReportParse.first_sample(advanced.get('receivePacketsPerSec')),
            ReportParse.first_sample(advanced.get('transmitPacketsPerSec')),
        ]
        return dict(zip(port_stats_fields(megabits), values))

    def warranty_record(resource, entitlement):
        entitlement = entitlement or {}
        model = resource.get('model') or resource.get('enclosureModel', '')
        values = [
            resource.get('name'),
            resource.get('type', ''),
            model,
            resource.get('partNumber', ''),
            resource.get('serialNumber', ''),
            entitlement.get('entitlementStatus', ''),
            entitlement.get('obligationId', ''),
            entitlement.get('obligationEndDate', ''),
        ]
        return dict(zip(WARRANTY_FIELDS, values))
