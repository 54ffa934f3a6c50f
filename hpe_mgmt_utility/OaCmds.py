'''
Onboard Administrator SOAP client.

Requests are SOAP 1.2 envelopes posted to https://<oa>/hpoa. After
userLogIn every envelope carries the OA session key in a WS-Security
header. Responses have their namespaces stripped so callers can use plain
paths such as 'getEnclosureInfoResponse/enclosureInfo/enclosureName'.
'''

import logging

import requests
import urllib3
from lxml import etree
from lxml.builder import ElementMaker

from hpe_mgmt_utility.errors import OaApiError, RemoteSessionError

urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

_LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30

ns = {'SOAP-ENV': 'http://www.w3.org/2003/05/soap-envelope',
      'wsse': 'http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-secext-1.0.xsd',
      'hpoa': 'hpoa.xsd'}
S = ElementMaker(namespace=ns['SOAP-ENV'], nsmap=ns)
H = ElementMaker(namespace=ns['hpoa'], nsmap=ns)
W = ElementMaker(namespace=ns['wsse'], nsmap=ns)

# Operations whose parameters are secrets; never logged
_SECRET_OPERATIONS = {'userLogIn', 'addUser', 'setUserPassword'}


def _remove_ns(xml):
    for el in xml.iter():
        if not isinstance(el.tag, str):
            continue
        el.tag = etree.QName(el).localname
        for a, v in list(el.items()):
            q = etree.QName(a)
            del el.attrib[a]
            el.attrib[q.localname] = v
    etree.cleanup_namespaces(xml)
    return xml


def _fault_messages(body):
    msg = []
    flt = body.find('Fault')
    if flt is None:
        return msg
    nfo = flt.find('Reason/Text')
    if nfo is not None and nfo.text:
        msg.append(nfo.text)
    nfo = flt.find('Detail/faultInfo')
    if nfo is not None:
        txt = nfo.find('errorText')
        if txt is not None and txt.text:
            msg.append(txt.text)
    return msg


def to_element(name, value):
    '''
    Build an hpoa element from a python value.
      bool       -> 'true' / 'false'
      int, str   -> text
      dict       -> child elements; a list value repeats the child tag
    '''
    el = H(name)
    if isinstance(value, dict):
        for key, child in value.items():
            if isinstance(child, (list, tuple)):
                for item in child:
                    el.append(to_element(key, item))
            else:
                el.append(to_element(key, child))
    elif isinstance(value, bool):
        el.text = 'true' if value else 'false'
    elif value is None:
        el.text = ''
    else:
        el.text = str(value)
    return el


def find_text(body, path, default=''):
    node = body.find(path)
    if node is None or node.text is None:
        return default
    return node.text


class OaCmds:
    def __init__(self, address, username, password, timeout=DEFAULT_TIMEOUT, session=None):
        self.address = address
        self.username = username
        self.password = password
        self.timeout = timeout
        self.url = f'https://{address}/hpoa'
        self.session_hdr = None
        self.session = session or requests.Session()
        self.session.verify = False
        self.session.headers.update({'Content-Type': 'application/soap+xml; charset=utf-8'})

    def _envelope(self, data):
        if self.session_hdr is not None:
            return S.Envelope(self.session_hdr, S.Body(data))
        return S.Envelope(S.Body(data))

    def _set_session_hdr(self, session_key):
        sec = W.Security(H.HpOaSessionKeyToken(H.oaSessionKey(session_key)))
        sec.attrib['{%s}mustUnderstand' % ns['SOAP-ENV']] = 'true'
        self.session_hdr = S.Header(sec)

    def call(self, operation, **params):
        request = H(operation)
        for name, value in params.items():
            request.append(to_element(name, value))
        data = etree.tostring(self._envelope(request))
        if operation in _SECRET_OPERATIONS:
            _LOGGER.debug('%s: %s', self.address, operation)
        else:
            _LOGGER.debug('%s: %s %s', self.address, operation, params)

        response = self.session.post(self.url, data=data, timeout=self.timeout)
        try:
            result = _remove_ns(etree.fromstring(response.content))
        except etree.XMLSyntaxError as err:
            raise OaApiError(operation, [f'unparsable response (status {response.status_code}): {err}']) from err
        body = result.find('Body')
        if body is None:
            raise OaApiError(operation, ['response has no SOAP Body'])
        if body.find('Fault') is not None:
            raise OaApiError(operation, _fault_messages(body))
        if response.status_code != 200:
            raise OaApiError(operation, [f'status {response.status_code}'])
        return body

    def login(self):
        try:
            body = self.call('userLogIn', username=self.username, password=self.password)
        except requests.RequestException as err:
            raise RemoteSessionError(self.address, str(err)) from err
        except OaApiError as err:
            raise RemoteSessionError(self.address, str(err)) from err
        key = find_text(body, 'userLogInResponse/HpOaSessionKeyToken/oaSessionKey')
        if not key:
            raise RemoteSessionError(self.address, 'Session key not found in OA response')
        self._set_session_hdr(key)
        _LOGGER.info('Logged in to OA %s', self.address)

    def logout(self):
        if self.session_hdr is None:
            return
        try:
            self.call('userLogOut')
        except (requests.RequestException, OaApiError) as err:
            _LOGGER.warning('%s: logout failed: %s', self.address, err)
        self.session_hdr = None
        self.session.close()

    def get_text(self, operation, path, **params):
        return find_text(self.call(operation, **params), path)

    def dump(self, operation, **params):
        body = self.call(operation, **params)
        return etree.tostring(body, pretty_print=True).decode('utf-8')
