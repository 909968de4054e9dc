"""
Harness fixtures package.
"""

from irc_harness.fixtures.output_verifier import OutputVerifier
from irc_harness.fixtures.processes import BackgroundProcess, ProcessRunner
from irc_harness.fixtures.readiness import ReadinessPoller
from irc_harness.fixtures.server_supervisor import ServerInstance, ServerSupervisor

__all__ = [
    "BackgroundProcess",
    "OutputVerifier",
    "ProcessRunner",
    "ReadinessPoller",
    "ServerInstance",
    "ServerSupervisor",
]
