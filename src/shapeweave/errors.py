"""Custom exception hierarchy for the shapeweave interpreter."""


class ShapeweaveError(Exception):
    """Base exception for all shapeweave errors."""


class SchemaError(ShapeweaveError):
    """Raised when a schema document cannot be loaded or fails shape validation."""


class ExpressionError(ShapeweaveError):
    """Raised when an expression cannot be tokenized, parsed or evaluated."""


class HelperNotFoundError(ShapeweaveError):
    """Raised when an action names a helper that is not registered."""


class HelperExecutionError(ShapeweaveError):
    """Raised when a helper or a compiled definition fails."""


class ReferenceResolutionError(ShapeweaveError):
    """Raised when a reference target is not present in the registry."""


class LimitExceededError(ShapeweaveError):
    """Raised when a loop or repeat exceeds the configured iteration cap."""


class DiagnosticError(ShapeweaveError):
    """Raised after a run when a diagnostic code is configured as an error."""


class ExportError(ShapeweaveError):
    """Raised when scene export fails."""
