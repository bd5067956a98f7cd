"""Errors and warnings raised while comparing layers of two Fields.

Every fatal condition of a comparison has its own exception class so that
calling scripts can decide what to retry (a comparison is a pure computation,
so retrying with corrected arguments is always safe). All of them derive from
ComparisonError.
"""


class ComparisonError(Exception):
    """Base class for all layer comparison failures."""


class DimensionMismatch(ComparisonError):
    """The two Fields do not have the same spatial-temporal dimensions."""


class ArgumentError(ComparisonError, ValueError):
    """Malformed layer selection (different lengths, unknown layers, ...)."""


class TypeMismatch(ComparisonError, TypeError):
    """The requested layers are of different kinds (continuous vs categorical)."""


class ConfigurationError(ComparisonError):
    """The requested comparison cannot be done with the data provided."""


class NoOverlapError(ComparisonError):
    """The two Fields have no points in common after merging."""


class QuantityMismatch(ComparisonError):
    """The two Fields describe different Quantities."""


class AmbiguousMatchError(ComparisonError):
    """Rounding the coordinates maps several rows of one Field onto one point."""


class QuantityMismatchWarning(UserWarning):
    """Quantities differ but the comparison was forced to go ahead."""


class LayerCheckWarning(UserWarning):
    """Layer checks were skipped or requested layers are missing."""


class PlottingWarning(UserWarning):
    """Inputs to a plotting function were unusable and nothing was plotted."""
