"""
Live end-to-end runs of the harness.

These tests start a real IRC server container and the real example
binaries. They are skipped unless a docker daemon is reachable and the
example binaries have been built (or a build command is configured).
"""
