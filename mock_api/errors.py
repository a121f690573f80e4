"""
Error taxonomy for the mock API.
"""


class MockApiError(Exception):
    """Base class for all mock API errors."""


class ConfigurationError(MockApiError, ValueError):
    """Invalid startup configuration. Raised before any traffic is served."""


class UpstreamError(MockApiError):
    """The production API could not produce a usable response."""


class FixtureError(MockApiError):
    """A fixture could not be read, evaluated or written."""


class LifecycleError(MockApiError, RuntimeError):
    """A listener could not be started or there was nothing to close."""
