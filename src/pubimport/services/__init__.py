"""Service layer for the pubimport pipeline."""

from .collaborators import LibraryBackend, PublicationStore, RestLibraryBackend, RestPublicationStore
from .importer import ImportOrchestrator, ImportOutcome, ImportSummary, describe_outcome
from .library import FolderTree
from .pubmed import LookupResult, PubMedSource, SearchSource, classify_input, normalize_record
from .selection import FilterOptions, Preview, PreviewManager, ResultFilter, ResultsView, filter_options
from .session import Notice, SearchSession, SessionState, build_query, describe_search_error
from .storage import LocalLibrary
from .summarizer import RemoteSummarizer, Summarizer, SummaryResult, summarize_one
from .workspace import ImportWorkspace, Modal, NoModal, PreviewModal, ResultsModal

__all__ = [
    "PubMedSource",
    "SearchSource",
    "LookupResult",
    "classify_input",
    "normalize_record",
    "SearchSession",
    "SessionState",
    "Notice",
    "build_query",
    "describe_search_error",
    "ResultsView",
    "ResultFilter",
    "FilterOptions",
    "filter_options",
    "Preview",
    "PreviewManager",
    "Summarizer",
    "RemoteSummarizer",
    "SummaryResult",
    "summarize_one",
    "ImportOrchestrator",
    "ImportOutcome",
    "ImportSummary",
    "describe_outcome",
    "FolderTree",
    "PublicationStore",
    "LibraryBackend",
    "RestPublicationStore",
    "RestLibraryBackend",
    "LocalLibrary",
    "ImportWorkspace",
    "Modal",
    "NoModal",
    "ResultsModal",
    "PreviewModal",
]
