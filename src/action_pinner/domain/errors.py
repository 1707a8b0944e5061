from __future__ import annotations
"""Error taxonomy raised by the pinning engine and its adapters."""


class PinnerError(RuntimeError):
    """Base class for every failure raised by action_pinner."""


class ActionReferenceParseError(PinnerError):
    """A `uses:` value could not be split into identity and ref."""


class UnresolvedVersionError(PinnerError):
    """A semantic-version ref has no matching tag; a human must pin it."""


class VersionNotFoundError(PinnerError):
    """The ref does not exist under any resolution strategy."""


class InfrastructureError(PinnerError):
    """Clone, fetch, query or filesystem failure."""


class RemoteLookupError(InfrastructureError):
    """The hosted forge API could not be queried."""


class WorkflowParseError(PinnerError):
    """A workflow document is not valid YAML."""
