"""
vmagent — on-demand build agent templates.

Resolves operator-supplied VM template configuration into one canonical
provisioning request, verifies templates against a provisioning service,
and feeds provisioning failures back into re-verification.
"""

import os

__version__ = "0.1.0"
__author__ = "vmagent contributors"

VMAGENT_HOME = os.environ.get("VMAGENT_HOME", "~/.vmagent")
