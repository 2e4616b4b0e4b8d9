#!/usr/bin/env python3
"""
Local CA bootstrap and certificate issuance.

Creates a self-signed root CA in the working directory, then issues as many
end-entity certificates (key, certificate, PKCS#12 bundle) as requested:

    ca.<CA>.key, ca.<CA>.crt
    certificates/<CN>/<CN>.key, <CN>.crt, <CN>.pfx

Requirements: pip install cryptography colorama termcolor pyfiglet
"""

import getpass
import os
import sys
import traceback
from argparse import ArgumentParser, SUPPRESS

import console
from ca_generator import CAGenerator
from errors import CertToolError, UserInputError
from passwords import PasswordSink, generate_password
from prerequisites import check_prerequisites
from secure_files import remove_file
from settings import load_config, validate
from sign_cert import EntityIssuer
from validation import is_affirmative, validate_ca_name, validate_entity_cn

INIT = "Init"
PREREQUISITES_CHECKED = "PrerequisitesChecked"
CA_READY = "CAReady"
ISSUE_ENTITY = "IssueEntity"
TEARDOWN = "Teardown"
DONE = "Done"

PASSWORD_ATTEMPTS = 3


class CertTool:
    """Runs one interactive session: prerequisites, CA, entities, teardown."""

    def __init__(self, config, base_dir, sink=None, ask=None, ask_secret=None):
        self.config = config
        self.base_dir = base_dir
        self.sink = sink or PasswordSink()
        self.ask = ask or input
        self.ask_secret = ask_secret or getpass.getpass
        self.state = INIT
        self.issued = []

    def prompt_ca_name(self):
        while True:
            result = validate_ca_name(self.ask("Enter the name for the Certificate Authority (CA): "))
            if result.is_ok:
                return result.value
            console.warning(result.reason)

    def load_existing_ca(self, generator, ca_name):
        for attempt in range(1, PASSWORD_ATTEMPTS + 1):
            password = self.ask_secret(f"Enter the password of the existing CA key for {ca_name}: ")
            try:
                return generator.load_root_ca(ca_name, password)
            except UserInputError as e:
                if attempt == PASSWORD_ATTEMPTS:
                    raise
                console.warning(e.message)

    def provision_ca(self):
        """Create the CA, or reuse the existing one when overwriting is declined."""
        ca_name = self.prompt_ca_name()
        generator = CAGenerator(self.base_dir, self.config)
        key_path, cert_path, _ = generator.paths(ca_name)

        console.info(f"Using CA CN: {ca_name}")
        console.info(f"Using CA key file: {os.path.basename(key_path)}")
        console.info(f"Using CA certificate file: {os.path.basename(cert_path)}")

        existing = generator.existing_files(ca_name)
        if existing:
            console.warning("CA key or certificate already exists. These will be overwritten.")
            if not is_affirmative(self.ask("Do you want to continue? (y/n): ")):
                console.info("Aborting CA creation; using the existing CA material.")
                return self.load_existing_ca(generator, ca_name)

        password = generate_password(self.config["password_bytes"])
        self.sink.publish(f"CA {ca_name}", password)
        ca = generator.create_root_ca(ca_name, password, overwrite=bool(existing))
        console.info("CA key and certificate created successfully!")
        return ca

    def prompt_entity_cn(self):
        """Ask for the entity CN; an empty answer ends the run."""
        while True:
            raw = self.ask("Enter the Common Name (CN) for the certificate: ")
            if not (raw or "").strip():
                raise UserInputError("The Common Name (CN) for the certificate cannot be empty.")
            result = validate_entity_cn(raw)
            if result.is_ok:
                return result.value
            console.warning(result.reason)

    def issue_entities(self, ca):
        issuer = EntityIssuer(ca, self.config, self.base_dir)
        while is_affirmative(self.ask("Do you want to add a certificate to the CA? (y/n): "),
                             allow_upper=False):
            self.state = ISSUE_ENTITY
            common_name = self.prompt_entity_cn()
            password = generate_password(self.config["password_bytes"])
            self.sink.publish(common_name, password)
            self.issued.append(issuer.issue(common_name, password))
            console.info(f"Certificate for {common_name} created successfully!")

    def teardown(self, ca):
        self.state = TEARDOWN
        if remove_file(ca.serial_path):
            console.debug(f"Removed serial file {ca.serial_path}")

    def run(self):
        check_prerequisites(self.base_dir)
        self.state = PREREQUISITES_CHECKED

        console.info("Starting certificate creation process...")
        ca = self.provision_ca()
        self.state = CA_READY

        self.issue_entities(ca)
        self.teardown(ca)
        self.state = DONE
        console.info("Certificate creation process completed!")
        return ca


def build_parser():
    parser = ArgumentParser(description="Create a local root CA and issue certificates signed by it.")
    parser.add_argument("-c", "--config", help="JSON file overriding the default settings")
    parser.add_argument("-w", "--workdir", default=os.getcwd(), help="Directory to write files to (default: current)")
    parser.add_argument("--ca-days", type=int, help="Validity of the CA certificate in days")
    parser.add_argument("--days", type=int, help="Validity of issued certificates in days")
    parser.add_argument("--password-file", help="Write generated passwords to this file instead of the console")
    parser.add_argument("--no-banner", action="store_true", help="Do not print the banner")
    parser.add_argument("--debug", action="store_true", help=SUPPRESS)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    console.setup(debug=args.debug)
    if not args.no_banner:
        console.banner()

    try:
        config = load_config(args.config)
        if args.ca_days is not None:
            config["ca_validity_days"] = args.ca_days
        if args.days is not None:
            config["entity_validity_days"] = args.days
        validate(config)
        sink = PasswordSink(args.password_file)
        CertTool(config, os.path.abspath(args.workdir), sink).run()
    except CertToolError as e:
        console.error(e.message, e.detail)
        if args.debug:
            traceback.print_exc()
        return e.exit_code
    except EOFError:
        print()
        console.error("Input ended before the run was complete.")
        return 1
    except KeyboardInterrupt:
        print()
        console.error("Interrupted.")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
