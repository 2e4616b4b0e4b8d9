#!/usr/bin/env python3
"""
Root CA Generator

Creates (or loads) the self-signed root Certificate Authority used to sign
every end-entity certificate of a run, and keeps the CA serial file.

Requirements: pip install cryptography
"""

import os
import secrets
from collections import namedtuple
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.x509.oid import NameOID
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import load_pem_private_key

import console
from errors import CryptoOperationError, PrerequisiteError, UserInputError, crypto_stage
from secure_files import PRIVATE, PUBLIC, read_file, write_file


CAContext = namedtuple("CAContext", [
    "common_name", "key_path", "cert_path", "serial_path", "password", "key", "cert",
])
CAContext.__doc__ = "Everything an issuance step needs to know about the signing CA."


def ca_file_names(ca_name):
    """Return (key, certificate, serial) file names for a validated CA name."""
    return f"ca.{ca_name}.key", f"ca.{ca_name}.crt", f"ca.{ca_name}.srl"


def generate_private_key(key_size=2048):
    """Generate an RSA private key."""
    with crypto_stage("generate RSA key"):
        return rsa.generate_private_key(
            public_exponent=65537,
            key_size=key_size
        )


class CAGenerator:
    def __init__(self, output_dir, config):
        """Initialize the CA generator with output directory and configuration."""
        self.output_dir = output_dir
        self.config = config

    def paths(self, ca_name):
        return tuple(os.path.join(self.output_dir, f) for f in ca_file_names(ca_name))

    def existing_files(self, ca_name):
        """CA key/certificate files that are already on disk."""
        key_path, cert_path, _ = self.paths(ca_name)
        return [p for p in (key_path, cert_path) if os.path.exists(p)]

    def create_root_ca(self, common_name, password, overwrite=False):
        """
        Create a root CA certificate and an encrypted private key.

        Args:
            common_name: CA name, used as subject CN and in the file names
            password: Password encrypting the private key at rest
            overwrite: Replace existing files instead of refusing

        Returns:
            CAContext for the new CA
        """
        key_path, cert_path, serial_path = self.paths(common_name)
        validity_days = self.config["ca_validity_days"]

        console.info("Generating CA key...")
        root_key = generate_private_key(self.config["key_size"])

        with crypto_stage("generate CA key"):
            key_pem = root_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.BestAvailableEncryption(password.encode())
            )
        write_file(key_path, key_pem, PRIVATE, exclusive=not overwrite)
        console.info(f"CA key generated successfully: {key_path}")

        console.info("Generating CA certificate...")
        subject = issuer = x509.Name([
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        ])
        now = datetime.now(timezone.utc).replace(microsecond=0)

        with crypto_stage("generate CA certificate"):
            root_cert = x509.CertificateBuilder().subject_name(
                subject
            ).issuer_name(
                issuer
            ).public_key(
                root_key.public_key()
            ).serial_number(
                x509.random_serial_number()
            ).not_valid_before(
                now
            ).not_valid_after(
                now + timedelta(days=validity_days)
            ).add_extension(
                x509.SubjectKeyIdentifier.from_public_key(root_key.public_key()),
                critical=False,
            ).add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(root_key.public_key()),
                critical=False,
            ).add_extension(
                x509.BasicConstraints(ca=True, path_length=None),
                critical=True,
            ).add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    key_cert_sign=True,
                    crl_sign=True,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    content_commitment=False,
                    encipher_only=False,
                    decipher_only=False
                ),
                critical=True,
            ).sign(root_key, hashes.SHA256())

        write_file(cert_path, root_cert.public_bytes(serialization.Encoding.PEM),
                   PUBLIC, exclusive=not overwrite)
        console.info(f"CA certificate generated successfully: {cert_path} (valid {validity_days} days)")

        return CAContext(common_name, key_path, cert_path, serial_path, password, root_key, root_cert)

    def load_root_ca(self, common_name, password):
        """
        Load existing CA material from disk.

        Raises:
            PrerequisiteError: If the key or certificate is missing
            UserInputError: If the password does not decrypt the key
            CryptoOperationError: If the files are unreadable or do not match
        """
        key_path, cert_path, serial_path = self.paths(common_name)
        missing = [p for p in (key_path, cert_path) if not os.path.exists(p)]
        if missing:
            raise PrerequisiteError(
                "Existing CA material is incomplete; cannot issue certificates.",
                detail=f"Missing: {', '.join(missing)}")

        console.info("Loading Root CA...")
        cert_data = read_file(cert_path)
        with crypto_stage("load CA certificate"):
            root_cert = x509.load_pem_x509_certificate(cert_data)
        console.debug(f"Root CA certificate loaded from: {cert_path}")

        key_data = read_file(key_path)
        try:
            root_key = load_pem_private_key(key_data, password=password.encode() if password else None)
        except UnsupportedAlgorithm as e:
            raise CryptoOperationError("load CA key", detail=str(e))
        except TypeError as e:
            if password:
                raise UserInputError("The CA key is not encrypted; leave the password empty.", detail=str(e))
            raise UserInputError("A password is required to decrypt the CA key.", detail=str(e))
        except ValueError as e:
            raise UserInputError("Could not decrypt the CA key with that password.", detail=str(e))
        console.debug(f"Root CA private key loaded from: {key_path}")

        if root_key.public_key().public_numbers() != root_cert.public_key().public_numbers():
            raise CryptoOperationError(
                "load CA material", detail=f"{key_path} does not match {cert_path}")

        return CAContext(common_name, key_path, cert_path, serial_path, password, root_key, root_cert)


def next_serial(ca):
    """
    Return the next serial number for a certificate signed by ca.

    The serial file holds the last serial used, in hex. It is created with a
    random starting value the first time it is needed.
    """
    data = read_file(ca.serial_path, missing_ok=True)
    if data is None:
        serial = x509.random_serial_number() >> 1  # leave room to increment
        write_file(ca.serial_path, f"{serial:X}\n".encode(), PRIVATE, exclusive=True)
        console.debug(f"Created serial file {ca.serial_path}")
        return serial

    text = data.decode("ascii", errors="replace").strip()
    try:
        serial = int(text, 16) + 1
    except ValueError:
        raise CryptoOperationError("read CA serial file", detail=f"{ca.serial_path}: {text!r}")
    if serial.bit_length() > 159:
        serial = secrets.randbits(158) + 1
    write_file(ca.serial_path, f"{serial:X}\n".encode(), PRIVATE, exclusive=False)
    return serial
