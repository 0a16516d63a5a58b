"""Public interface for the ``statement_import`` package.

Symbol re-exports only: the pipeline entry points, the context and request
types, the data model and the error taxonomy.
"""

from .api import import_statement
from .config import ImportSettings
from .credentials import (
    EnvSecretProvider,
    Password,
    SecretProvider,
    StaticSecretProvider,
)
from .errors import (
    AmbiguousRowError,
    ArchiveError,
    BalanceMismatchError,
    CommitFailedError,
    CorruptArchiveError,
    ExtractionError,
    ImportCancelledError,
    ImportFailedError,
    ImportFailure,
    MissingSummaryError,
    NoTextLayerError,
    ParseError,
    StatementImportError,
    StorageError,
    UnknownBankError,
    UnrecognizedRowFormatError,
    UnsupportedDocumentVersionError,
    UnsupportedFormatError,
    WrongPasswordError,
)
from .grammar import ColumnSpec, GrammarDescriptor, RowPattern
from .importers import GrammarImporter, ImporterRegistry, StatementImporter, default_registry
from .models import (
    DuplicateClass,
    DuplicateDecision,
    ExtractedDocument,
    ImportBatch,
    ImportResult,
    ParsedStatement,
    RawTransaction,
    ReviewItem,
    StatementSummary,
)
from .orchestrator import (
    ImportContext,
    ImportOrchestrator,
    ImportRequest,
    ImportState,
    ProgressEvent,
)
from .persistence import AccountHistoryProvider, SqlLedgerStore

__all__ = [
    # API
    "import_statement",
    "ImportOrchestrator",
    "ImportContext",
    "ImportRequest",
    "ImportState",
    "ProgressEvent",
    "ImportSettings",
    # Collaborators
    "AccountHistoryProvider",
    "SqlLedgerStore",
    "SecretProvider",
    "StaticSecretProvider",
    "EnvSecretProvider",
    "Password",
    # Importers
    "StatementImporter",
    "GrammarImporter",
    "ImporterRegistry",
    "default_registry",
    "GrammarDescriptor",
    "ColumnSpec",
    "RowPattern",
    # Models
    "ExtractedDocument",
    "RawTransaction",
    "StatementSummary",
    "ParsedStatement",
    "DuplicateClass",
    "DuplicateDecision",
    "ImportBatch",
    "ImportResult",
    "ReviewItem",
    # Errors
    "StatementImportError",
    "ArchiveError",
    "WrongPasswordError",
    "CorruptArchiveError",
    "UnsupportedFormatError",
    "ExtractionError",
    "NoTextLayerError",
    "UnsupportedDocumentVersionError",
    "ParseError",
    "UnrecognizedRowFormatError",
    "AmbiguousRowError",
    "MissingSummaryError",
    "BalanceMismatchError",
    "StorageError",
    "CommitFailedError",
    "UnknownBankError",
    "ImportCancelledError",
    "ImportFailure",
    "ImportFailedError",
]
