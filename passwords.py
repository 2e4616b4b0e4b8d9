"""
Generation and hand-off of random passwords.

Passwords are shown on the console by default; with a password file they are
appended to an owner-only file instead and never printed.
"""

import base64
import secrets

import console
from secure_files import append_line


def generate_password(nbytes=32):
    """Random bytes, base64 encoded (same shape as `openssl rand -base64 32`)."""
    return base64.b64encode(secrets.token_bytes(nbytes)).decode("ascii")


class PasswordSink:
    def __init__(self, password_file=None):
        self.password_file = password_file

    def publish(self, label, password):
        if self.password_file:
            append_line(self.password_file, f"{label}: {password}")
            console.info(f"Password for {label} written to {self.password_file}")
        else:
            console.secret(label, password)
