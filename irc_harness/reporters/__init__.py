"""
Harness reporters package.
"""

from irc_harness.reporters.run_report import RunReport

__all__ = [
    "RunReport",
]
