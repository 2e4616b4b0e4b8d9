"""
Shared fixtures for the test suite.
"""

import copy

from settings import DEFAULTS


def make_config(**overrides):
    config = copy.deepcopy(DEFAULTS)
    config.update(overrides)
    return config


def scripted(answers):
    """A prompt function returning the given answers in order."""
    remaining = iter(answers)

    def ask(prompt=""):
        return next(remaining)
    return ask


class RecordingSink:
    """Password sink that keeps passwords instead of printing them."""

    def __init__(self):
        self.passwords = {}

    def publish(self, label, password):
        self.passwords[label] = password
