"""
Testcase catalog. Every test must be listed here to be runnable by name.
"""

from agent.plugins.echo_plugin import Echo
from agent.plugins.filter_input_plugin import (FilterInputDropDifferentUDPPort, FilterInputDropUDP,
                                               FilterInputDropUDPPort)
from core.registry import TestcaseRegistry

TESTCASES = [
    FilterInputDropUDP,
    FilterInputDropUDPPort,
    FilterInputDropDifferentUDPPort,
    Echo,
]


def build_registry() -> TestcaseRegistry:
    """Build the frozen registry of all catalog tests."""
    return TestcaseRegistry.build(cls() for cls in TESTCASES)
