"""
Setup-phase errors and warnings.

Every error raised while a domain is being configured derives from
:class:`ConfigurationError` and carries the entity, key and value that a
user needs to fix the configuration. Errors are synchronous: nothing in
this package retries or defers them.
"""


class ConfigurationError(Exception):
    """Base class for configuration errors raised during setup."""

    def __init__(self, message, entity=None, key=None, value=None):
        super().__init__(message)
        self.entity = entity
        self.key = key
        self.value = value


class DuplicateNameError(ConfigurationError):
    """Raised when a name (or label) is registered twice."""

    pass


class NotFoundError(ConfigurationError):
    """Raised when an unregistered name or label is referenced."""

    pass


class ShapeMismatchError(ConfigurationError):
    """Raised when a value shape does not match the declared kind."""

    pass


class InvalidOptionError(ConfigurationError):
    """Raised for unknown option keys or out-of-range option values."""

    pass


class UnlinkedRoleError(ConfigurationError):
    """Raised when a linked property or advection field has no definition."""

    pass


class OverlappingBoundaryConditionError(ConfigurationError):
    """Raised when two boundary conditions cover the same mesh entities."""

    pass


class FrozenConfigurationError(ConfigurationError):
    """Raised when a finalized object is modified."""

    pass


class SetupError(ConfigurationError):
    """
    Aggregate error raised by ``Domain.finalize``.

    Attributes
    ----------
    violations : list of ConfigurationError
        Every problem found, in the order it was detected.
    """

    def __init__(self, violations, entity=None):
        self.violations = list(violations)
        lines = [f"{len(self.violations)} configuration error(s) found:"]
        for i, violation in enumerate(self.violations, 1):
            lines.append(f"  {i}. [{type(violation).__name__}] {violation}")
        super().__init__("\n".join(lines), entity=entity)


class SetupWarning(UserWarning):
    """Legal but suspicious configuration, such as re-linking a term."""

    pass
