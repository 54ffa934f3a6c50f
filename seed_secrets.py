#!/usr/bin/env python3
# seed_secrets.py  (run interactively once per workstation)
# Stores appliance and OA passwords in the encrypted keyring read by
# run_step/site_creds.py. Services seeded:
#   <appliance>   for every [appliances] name   (DEFAULT_USERS)
#   oa-<site>     for every [site:<name>]       (DEFAULT_USERS + local users)

import argparse
import getpass
from typing import Callable, Iterable, List, Tuple

import keyring

from run_step.site_config import SITES_FILE, SiteTable, load_site_table
from run_step.site_creds import DEFAULT_USERS, _bind_keyring


def default_pairs(table: SiteTable) -> List[Tuple[str, str]]:
    pairs = []
    for appliance in table.appliances:
        pairs.extend((appliance, user) for user in DEFAULT_USERS)
    for site in table.sites:
        users = list(DEFAULT_USERS)
        users += [name for name, _acl in site.local_users if name not in users]
        pairs.extend((f"oa-{site.name}", user) for user in users)
    return pairs


def seed(pairs: Iterable[Tuple[str, str]],
         prompt: Callable[[str], str] = getpass.getpass,
         store: Callable[[str, str, str], None] = keyring.set_password) -> List[Tuple[str, str]]:
    """
    Prompt for each (service, user) and store the answer; an empty answer
    skips the pair. Returns the pairs that were stored.
    """
    stored = []
    for service, user in pairs:
        pw = prompt(f"Enter password for {service}/{user} (empty to skip): ")
        if not pw:
            print(f"Skipped {service}/{user}")
            continue
        store(service, user, pw)
        stored.append((service, user))
        print(f"Stored {service}/{user}")
    return stored


def main(argv=None):
    parser = argparse.ArgumentParser(description="Seed the encrypted keyring")
    parser.add_argument("--config", default=SITES_FILE, help="site configuration file (default: %(default)s)")
    parser.add_argument("--service", help="seed a single service instead of the whole site table")
    parser.add_argument("--user", action="append", help="user to seed for --service (repeatable)")
    args = parser.parse_args(argv)

    _bind_keyring()
    if args.service:
        pairs = [(args.service, user) for user in (args.user or DEFAULT_USERS)]
    else:
        pairs = default_pairs(load_site_table(args.config))
    stored = seed(pairs)
    print(f"\nAll set. {len(stored)} password(s) stored.")


if __name__ == "__main__":
    main()
