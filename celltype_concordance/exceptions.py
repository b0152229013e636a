"""Exception types raised by the concordance pipeline."""


class ConcordanceError(Exception):
    """Base class for pipeline errors."""

    pass


class InputValidationError(ConcordanceError):
    """Raised when an input table or matrix does not have the expected shape."""

    pass


class IdentifierMismatchError(ConcordanceError):
    """Raised when annotation identifiers do not match the rewrite rule.

    Only raised when the reconciliation mismatch policy is ``"error"``.
    """

    def __init__(self, identifiers, marker: str):
        self.identifiers = list(identifiers)
        self.marker = marker
        preview = ", ".join(self.identifiers[:5])
        super().__init__(
            f"{len(self.identifiers)} identifier(s) do not contain marker "
            f"'{marker}': {preview}"
        )


class ClassifierContractError(ConcordanceError):
    """Raised when classifier output does not cover every retained cell."""

    def __init__(self, missing_ids, message: str = "returned no prediction for"):
        self.missing_ids = list(missing_ids)
        preview = ", ".join(self.missing_ids[:5])
        super().__init__(
            f"Classifier {message} {len(self.missing_ids)} retained cell(s): {preview}"
        )
