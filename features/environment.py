"""
Behave environment configuration

This file is run before and after test scenarios to set up and tear down
the test environment.
"""

from marginalia.logging_config import GlobalIndent


def before_scenario(context, scenario):
    """Run before each scenario"""
    GlobalIndent.reset()
    for name in ("document", "anchor", "resolution", "service", "annotation"):
        if hasattr(context, name):
            delattr(context, name)
