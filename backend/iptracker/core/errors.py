# iptracker/core/errors.py


class CommandError(Exception):
    """A command failed; only the caller that submitted it is affected."""


class CredentialFormatError(CommandError):
    MISSING_SEPARATOR = "missing_separator"
    NON_NUMERIC_ID = "non_numeric_id"

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind


class UnknownApplicationError(CommandError):
    pass


class CredentialMismatchError(CommandError):
    pass


class UnsupportedAddressError(CommandError):
    pass


class CorruptRecordError(CommandError):
    """The store holds data this version cannot interpret."""


class WorkerUnavailableError(CommandError):
    pass


class StoreError(CommandError):
    pass


class StoreConnectionError(StoreError):
    pass
