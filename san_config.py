"""
SAN configuration files.

The configuration is written in OpenSSL request-config syntax next to the
entity's files, read back to build the subject and the subjectAltName list,
and removed once signing is done.
"""

import configparser
import os
from collections import namedtuple
from contextlib import contextmanager

from cryptography import x509
from cryptography.x509.oid import NameOID

import console
from errors import CryptoOperationError
from secure_files import PRIVATE, remove_file, write_file

SAN_CONFIG_NAME = "SAN_config.cnf"

SAN_TEMPLATE = """\
[req]
distinguished_name = req_distinguished_name
req_extensions = v3_req

[req_distinguished_name]
C = {country}
ST = {state}
L = {locality}
O = {organization}
OU = {organizational_unit}
CN = {common_name}
emailAddress = {email}

[v3_req]
subjectAltName = @alt_names

[alt_names]
{alt_names}
"""

# [req_distinguished_name] key -> subject attribute, in subject order
DN_FIELDS = [
    ("C", NameOID.COUNTRY_NAME),
    ("ST", NameOID.STATE_OR_PROVINCE_NAME),
    ("L", NameOID.LOCALITY_NAME),
    ("O", NameOID.ORGANIZATION_NAME),
    ("OU", NameOID.ORGANIZATIONAL_UNIT_NAME),
    ("CN", NameOID.COMMON_NAME),
    ("emailAddress", NameOID.EMAIL_ADDRESS),
]

SanConfig = namedtuple("SanConfig", ["path", "subject", "alt_names"])


def dns_names(entity_cn, extra_names):
    """The entity CN first, then the extra names, without duplicates."""
    names = [entity_cn]
    for name in extra_names:
        if name not in names:
            names.append(name)
    return names


def render(entity_cn, subject_defaults, extra_names=("localhost",)):
    alt_names = "\n".join(f"DNS.{i} = {name}"
                          for i, name in enumerate(dns_names(entity_cn, extra_names), 1))
    return SAN_TEMPLATE.format(common_name=entity_cn, alt_names=alt_names, **subject_defaults)


def write_san_config(entity_dir, entity_cn, subject_defaults, extra_names=("localhost",)):
    """Write the configuration file, replacing any earlier one."""
    path = os.path.join(entity_dir, SAN_CONFIG_NAME)
    write_file(path, render(entity_cn, subject_defaults, extra_names).encode("utf-8"),
               PRIVATE, exclusive=False)
    console.debug(f"SAN configuration written to {path}")
    return path


def read_san_config(path):
    """Parse a configuration file into its subject Name and SAN extension."""
    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str  # keys are case sensitive (emailAddress, DNS.1)
    try:
        with open(path, encoding="utf-8") as f:
            parser.read_file(f)
        dn = parser[parser["req"]["distinguished_name"]]
        ext = parser[parser["req"]["req_extensions"]]
        alt_section = ext["subjectAltName"].lstrip("@")
        alt = parser[alt_section]

        subject = x509.Name([
            x509.NameAttribute(oid, dn[key]) for key, oid in DN_FIELDS if dn.get(key)
        ])
        names = [x509.DNSName(value) for key, value in alt.items() if key.startswith("DNS.")]
    except (configparser.Error, KeyError, ValueError) as e:
        raise CryptoOperationError("read SAN configuration", detail=f"{path}: {e}")

    return SanConfig(path, subject, x509.SubjectAlternativeName(names))


@contextmanager
def san_config(entity_dir, entity_cn, subject_defaults, extra_names=("localhost",)):
    """
    Write the SAN configuration for the duration of the block.

    Yields the parsed SanConfig; the file is deleted when the block exits,
    whether it raised or not.
    """
    path = write_san_config(entity_dir, entity_cn, subject_defaults, extra_names)
    try:
        yield read_san_config(path)
    finally:
        remove_file(path)
