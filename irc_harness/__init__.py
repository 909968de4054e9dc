"""
End-to-end harness for the IRC client examples.

Runs the example receiver and sender against a real IRC server in a
throwaway Docker container and checks that what was sent was received.

Key Features:
- Disposable, named server container (forced cleanup before start)
- Bounded TCP readiness polling
- Background receiver with captured output, foreground sender
- Marker verification with full output dump on failure
- Cleanup that always runs and never masks the verdict
"""

__version__ = "0.1.0"
