"""
scarunner - Software Composition Analysis scan runner

Submits dependency scans of remote repositories or local directories to an
SCA service, waits for them to finish, retrieves the risk report and checks
it against per-severity vulnerability thresholds.
"""

__version__ = "1.0.0"
__author__ = "scarunner Team"
__status__ = "Development"
