"""Stage-scoped secret encryption toolkit backed by a cloud KMS."""

__version__ = "0.1.0"
