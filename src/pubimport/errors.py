"""Error taxonomy for the publication import pipeline."""

from __future__ import annotations


class PubImportError(RuntimeError):
    """Base class for every failure raised by pubimport."""


class EmptyQueryError(PubImportError):
    """Raised when a search is attempted without any query text."""


class NoResultsError(PubImportError):
    """The provider matched nothing. Informational, not a crash."""


class ProviderUnavailableError(PubImportError):
    """The bibliographic provider could not be reached or answered with an error."""

    def __init__(self, stage: str, status_code: int | None = None, detail: str = "") -> None:
        self.stage = stage
        self.status_code = status_code
        self.detail = detail
        if status_code is None:
            message = f"PubMed {stage} request failed: {detail}"
        else:
            message = f"PubMed {stage} failed: {status_code} {detail}".rstrip()
        super().__init__(message)

    @property
    def is_network_error(self) -> bool:
        return self.status_code is None


class InvalidIdFormatError(PubImportError):
    """Raised when a PMID is not purely numeric."""


class NotFoundError(PubImportError):
    """The provider or store holds no record for the requested id."""


class CollaboratorError(PubImportError):
    """A REST collaborator rejected a request or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class PersistenceError(CollaboratorError):
    """Persisting a publication failed."""


class LibraryFilingError(CollaboratorError):
    """A persisted publication could not be filed into a library folder."""


class LibraryRequestError(CollaboratorError):
    """A folder create/rename/move/delete/toggle request failed."""


class SummaryUnavailableError(CollaboratorError):
    """The AI summarization collaborator produced no summary."""


class FolderNotFoundError(PubImportError):
    """The referenced library folder does not exist."""


class FolderCycleError(PubImportError):
    """A folder move would make the folder its own ancestor."""


class RedundantMoveError(PubImportError):
    """A folder move targets the folder's current parent."""


class EmptyNameError(PubImportError):
    """A folder name is blank after trimming."""


class DuplicateFilingError(PubImportError):
    """The target folder already holds the publication."""


class NotFiledError(PubImportError):
    """The publication is not filed in the folder it is being moved out of."""
