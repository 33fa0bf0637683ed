"""
Agent Errors
============
Exceptions surfaced to callers of the metadata agent core.
"""


class MetadataAgentError(Exception):
    """Base class for errors raised by the metadata agent."""


class ConfigurationError(MetadataAgentError):
    """The agent configuration file could not be read or parsed."""


class AuthenticationError(MetadataAgentError):
    """An OAuth2 access token could not be obtained."""
