# site_creds.py
# Returns credentials for an appliance, OA or iLO in the order you want to try them.
# Passwords are pulled from your encrypted keyring (see seed_secrets.py).

import getpass
import logging
import pathlib
from typing import Callable, List, Optional, Sequence, Tuple

import keyring
from keyrings.alt.file import EncryptedKeyring

from hpe_mgmt_utility.errors import ApplianceSelectionError, RemoteSessionError

_LOGGER = logging.getLogger(__name__)

# Default username order (edit if needed)
DEFAULT_USERS = [
    "Administrator",
    "admin",
    "svc-automation",
]


def _bind_keyring(
    master_path: str = "~/.keyring-master",
    crypt_path: str = "~/.local/share/python_keyring/crypted_pass.cfg",
) -> None:
    """
    Bind EncryptedKeyring with master from ~/.keyring-master (no prompts at runtime).
    """
    mp = pathlib.Path(master_path).expanduser()
    if not mp.exists():
        raise RemoteSessionError("keyring", f"Master file not found: {mp}")
    master = mp.read_text().strip()
    cp = pathlib.Path(crypt_path).expanduser()
    cp.parent.mkdir(parents=True, exist_ok=True)

    kr = EncryptedKeyring()
    kr.file_path = str(cp)
    kr.keyring_key = master
    keyring.set_keyring(kr)


def get_site_credentials(service: str, users: Optional[Sequence[str]] = None) -> List[Tuple[str, str]]:
    """
    Return list of (user, password) stored for a service, in order.
    Skips users that have no stored password.
    """
    _bind_keyring()
    order = users or DEFAULT_USERS
    creds: List[Tuple[str, str]] = []
    for u in order:
        pw = keyring.get_password(service, u)
        if pw:
            creds.append((u, pw))
    return creds


def resolve_credentials(
    service: str,
    username: Optional[str] = None,
    password: Optional[str] = None,
    prompt: Callable[[str], str] = getpass.getpass,
) -> List[Tuple[str, str]]:
    """
    Credentials given on the command line win; a username without a password
    is looked up in the keyring first and prompted for last.
    """
    if username and password:
        return [(username, password)]
    if username:
        creds = get_site_credentials(service, [username])
        if creds:
            return creds
        return [(username, prompt(f"Password for {username}@{service}: "))]
    creds = get_site_credentials(service)
    if not creds:
        raise RemoteSessionError(service, "No stored credentials for service")
    return creds


def connect_first(factory, host: str, credentials: Sequence[Tuple[str, str]]):
    """
    Call factory(host, user, pw) for each credential until one logs in.
    Re-raises the last login failure when every credential is rejected.
    """
    last_error: Optional[RemoteSessionError] = None
    for user, pw in credentials:
        try:
            return factory(host, user, pw)
        except RemoteSessionError as err:
            _LOGGER.warning("%s: login as %s failed", host, user)
            last_error = err
    if last_error is None:
        raise RemoteSessionError(host, "No credentials to try")
    raise last_error


def select_appliance(requested: Optional[str], configured: Sequence[str]) -> str:
    """
    Pick the appliance to talk to: an explicit name wins, otherwise exactly
    one configured appliance is required.
    """
    if requested:
        return requested
    if len(configured) == 1:
        return configured[0]
    if not configured:
        raise ApplianceSelectionError("No appliance given and none configured; use --appliance")
    raise ApplianceSelectionError(
        f"Several appliances configured ({', '.join(configured)}); choose one with --appliance"
    )
