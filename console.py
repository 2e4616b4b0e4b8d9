"""
Console output helpers.

All user visible messages go through here so the tags and colors stay
consistent: [INFO], [WARNING], [ERROR] (timestamped) and [DEBUG].
"""

import sys
from datetime import datetime

from colorama import init
from pyfiglet import Figlet
from termcolor import colored, cprint

script_name = "Cert-Tool"
script_version = "2026-10-18v01"

_debug = False
_initialised = False


def setup(debug=False):
    """Initialise colorama (once) and the debug flag."""
    global _debug, _initialised
    _debug = debug
    if not _initialised:
        init(strip=not sys.stdout.isatty())  # strip colors if stdout is redirected
        _initialised = True


def banner():
    f = Figlet(font="slant")
    cprint(f.renderText(script_name), "cyan")
    print(colored(f"version {script_version}", "cyan"))
    print()


def info(message):
    print(colored("[INFO]", "green"), message)


def warning(message):
    print(colored("[WARNING]", "yellow"), message)


def debug(message):
    if _debug:
        print(colored("[DEBUG]", "magenta"), message)


def timestamp():
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def error(message, detail=None):
    """Print a timestamped error, plus the failing operation if known."""
    print(colored("[ERROR]", "red"), f"{timestamp()} - {message}", file=sys.stderr)
    if detail:
        print(colored("[DETAIL]", "red"), detail, file=sys.stderr)


def secret(label, value):
    """Show a generated password."""
    print(colored("[INFO]", "green"), f"Password generated automatically for {label}:",
          colored(value, "yellow", attrs=["bold"]))
