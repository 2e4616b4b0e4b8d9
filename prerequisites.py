"""
Environment checks run before anything is generated.

The cryptography package itself is imported by every module of the tool, so
the toolkit check verifies that the installed release provides the
primitives used here, not that the package is present.
"""

import importlib
import os

import console
from errors import PrerequisiteError

# module -> attributes the tool relies on
REQUIRED_PRIMITIVES = {
    "cryptography.hazmat.primitives.asymmetric.rsa": ["generate_private_key"],
    "cryptography.x509": ["CertificateBuilder", "CertificateSigningRequestBuilder",
                          "SubjectAlternativeName"],
    "cryptography.hazmat.primitives.serialization.pkcs12": ["serialize_key_and_certificates",
                                                           "load_key_and_certificates"],
}


def check_toolkit():
    """Make sure the installed cryptography release has every primitive the tool uses."""
    for module_name, attributes in REQUIRED_PRIMITIVES.items():
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise PrerequisiteError(
                "The installed cryptography toolkit is too old. Please upgrade it and try again.",
                detail=str(e))
        missing = [a for a in attributes if not hasattr(module, a)]
        if missing:
            raise PrerequisiteError(
                "The installed cryptography toolkit is too old.",
                detail=f"{module_name} lacks {', '.join(missing)}")

    from cryptography import __version__
    from cryptography.hazmat.backends.openssl import backend
    version_text = backend.openssl_version_text()
    console.debug(f"cryptography {__version__} using {version_text}")
    return version_text


def check_writable(directory):
    if not os.path.isdir(directory):
        raise PrerequisiteError(f"Working directory does not exist: {directory}")
    if not os.access(directory, os.W_OK | os.X_OK):
        raise PrerequisiteError(
            "Current directory is not writable. Check permissions and try again.",
            detail=directory)


def check_prerequisites(directory):
    check_toolkit()
    check_writable(directory)
