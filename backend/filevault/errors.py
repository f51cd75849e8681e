"""Error taxonomy shared by the stores, the registry and the engines.

Routes never raise these into the client directly; main.py maps each kind
to a status code.
"""


class FileVaultError(Exception):
    """Base class for every error the core reports to its callers."""
    pass


class NotFoundError(FileVaultError):
    """No record exists for the given (id, backend) pair."""
    pass


class InvalidInputError(FileVaultError):
    """Malformed filter, unsafe path, bad rename target, non-JSON merge input, empty batch."""
    pass


class InvalidFormatError(FileVaultError):
    """Blob content could not be parsed where JSON was required."""
    pass


class BackendUnavailableError(FileVaultError):
    """The relational or document store could not be reached or rejected the call."""
    pass


class BlobIOError(FileVaultError):
    """Filesystem failure while reading, writing or deleting a blob."""
    pass
