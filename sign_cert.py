#!/usr/bin/env python3
"""
Certificate Signing

Issues end-entity certificates signed by the run's root CA: key, CSR,
signed certificate and a password protected PKCS#12 bundle per entity.
"""

import os
from collections import namedtuple
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs12

import console
from ca_generator import generate_private_key, next_serial
from errors import CryptoOperationError, FileSystemError, crypto_stage
from san_config import san_config
from secure_files import PRIVATE, PUBLIC, make_dir, read_file, remove_file, write_file

EntityPaths = namedtuple("EntityPaths", ["directory", "key", "csr", "cert", "pfx"])


def entity_paths(base_dir, certificates_dir, common_name):
    directory = os.path.join(base_dir, certificates_dir, common_name)
    stem = os.path.join(directory, common_name)
    return EntityPaths(directory, stem + ".key", stem + ".csr", stem + ".crt", stem + ".pfx")


def create_csr(private_key, san):
    """
    Build a CSR for private_key carrying the subject and SAN request of san.

    Args:
        private_key: Entity RSA key
        san: Parsed SanConfig
    """
    builder = x509.CertificateSigningRequestBuilder()
    builder = builder.subject_name(san.subject)
    builder = builder.add_extension(san.alt_names, critical=False)
    return builder.sign(private_key, hashes.SHA256())


def sign_certificate(csr, ca, san, serial, validity_days=365):
    """
    Sign a CSR with the CA certificate and private key.

    Args:
        csr: Loaded certificate signing request
        ca: CAContext of the signing CA
        san: Parsed SanConfig; its subjectAltName is copied into the certificate
        serial: Serial number from the CA serial file
        validity_days: Number of days the certificate is valid
    """
    if not csr.is_signature_valid:
        raise CryptoOperationError("verify CSR signature", detail="CSR self-signature is invalid")

    now = datetime.now(timezone.utc).replace(microsecond=0)

    # Build the certificate
    builder = x509.CertificateBuilder()
    builder = builder.subject_name(csr.subject)
    builder = builder.issuer_name(ca.cert.subject)
    builder = builder.public_key(csr.public_key())
    builder = builder.serial_number(serial)
    builder = builder.not_valid_before(now)
    builder = builder.not_valid_after(now + timedelta(days=validity_days))

    # Subject Alternative Name from the SAN configuration
    builder = builder.add_extension(san.alt_names, critical=False)

    # Basic Constraints (not a CA)
    builder = builder.add_extension(
        x509.BasicConstraints(ca=False, path_length=None),
        critical=True
    )

    # Key Usage for end-entity
    builder = builder.add_extension(
        x509.KeyUsage(
            digital_signature=True,
            key_encipherment=True,
            content_commitment=False,
            data_encipherment=False,
            key_agreement=False,
            key_cert_sign=False,
            crl_sign=False,
            encipher_only=False,
            decipher_only=False
        ),
        critical=True
    )

    # Extended Key Usage (for server/client authentication)
    builder = builder.add_extension(
        x509.ExtendedKeyUsage([
            ExtendedKeyUsageOID.SERVER_AUTH,
            ExtendedKeyUsageOID.CLIENT_AUTH
        ]),
        critical=False
    )

    builder = builder.add_extension(
        x509.SubjectKeyIdentifier.from_public_key(csr.public_key()),
        critical=False
    )
    builder = builder.add_extension(
        x509.AuthorityKeyIdentifier.from_issuer_public_key(ca.cert.public_key()),
        critical=False
    )

    return builder.sign(private_key=ca.key, algorithm=hashes.SHA256())


def export_pkcs12(common_name, private_key, certificate, password):
    """Serialize key and certificate into a PKCS#12 bundle encrypted with password."""
    return pkcs12.serialize_key_and_certificates(
        name=common_name.encode(),
        key=private_key,
        cert=certificate,
        cas=None,
        encryption_algorithm=serialization.BestAvailableEncryption(password.encode())
    )


class EntityIssuer:
    def __init__(self, ca, config, base_dir):
        self.ca = ca
        self.config = config
        self.base_dir = base_dir

    def paths(self, common_name):
        return entity_paths(self.base_dir, self.config["certificates_dir"], common_name)

    def issue(self, common_name, password):
        """
        Issue key, certificate and bundle for common_name.

        Every step must succeed before the next one starts; the CSR and the
        SAN configuration are removed once the certificate is signed.

        Returns:
            EntityPaths of the created files
        """
        paths = self.paths(common_name)
        taken = [p for p in (paths.key, paths.cert, paths.pfx) if os.path.exists(p)]
        if taken:
            raise FileSystemError(
                f"Certificate files for {common_name} already exist.",
                detail=f"Remove {', '.join(taken)} to issue it again.")

        make_dir(paths.directory)

        console.info(f"Generating key for {paths.directory}...")
        entity_key = generate_private_key(self.config["key_size"])
        with crypto_stage(f"generate key for {paths.directory}"):
            key_pem = entity_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.TraditionalOpenSSL,
                encryption_algorithm=serialization.NoEncryption()
            )
        write_file(paths.key, key_pem, PRIVATE)

        try:
            with san_config(paths.directory, common_name, self.config["subject"],
                            self.config["extra_dns_names"]) as san:
                console.info(f"Generating CSR for {paths.directory}...")
                with crypto_stage(f"generate CSR for {paths.directory}"):
                    csr = create_csr(entity_key, san)
                write_file(paths.csr, csr.public_bytes(serialization.Encoding.PEM), PRIVATE,
                           exclusive=False)

                console.info(f"Signing certificate for {paths.directory}...")
                csr_data = read_file(paths.csr)
                with crypto_stage(f"sign certificate for {paths.directory}"):
                    csr = x509.load_pem_x509_csr(csr_data)
                    cert = sign_certificate(csr, self.ca, san, next_serial(self.ca),
                                            self.config["entity_validity_days"])
            write_file(paths.cert, cert.public_bytes(serialization.Encoding.PEM), PUBLIC)
        finally:
            if remove_file(paths.csr):
                console.info(f"CSR file for {common_name} removed successfully.")

        console.info(f"Exporting {paths.directory} certificate to PKCS#12...")
        with crypto_stage(f"export {paths.directory} certificate to PKCS#12"):
            bundle = export_pkcs12(common_name, entity_key, cert, password)
        write_file(paths.pfx, bundle, PRIVATE)

        console.debug(f"Serial number: {cert.serial_number:X}")
        return paths
