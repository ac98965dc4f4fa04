"""
xyscan - headless orchestrator for the Xygeni scanner

Installs the scanner binary, runs it against a source tree, and turns its
per-category JSON reports into a single issue model that editors and CLIs
can query.
"""

import logging

__version__ = "1.0.0"
__author__ = "Xygeni Integrations Team"
__description__ = "Headless Xygeni scanner orchestrator"

logging.getLogger(__name__).addHandler(logging.NullHandler())
