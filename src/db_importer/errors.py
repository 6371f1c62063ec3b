"""Importer error taxonomy.

Every failing operation is tagged with an ``ErrorCode`` (the number shown
as ``Error(<code>)`` in the import log) and wrapped in the error class of
its category.  With ``die_on_error`` enabled the executor re-raises the
category error as an ``ImportAbortedError``.

Usage:
    from db_importer.errors import ErrorCode, ImportAbortedError

    try:
        await importer.update_schema()
    except ImportAbortedError as e:
        print(e.code, e.__cause__)
"""

from enum import IntEnum


class ErrorCode(IntEnum):
    """Operation categories reported in the import log."""

    CREATE_TABLE = 1
    CREATE_INDEX = 2
    ADD_PRIMARY_KEY = 3
    ADD_FOREIGN_KEY = 4
    INSERT_DATA = 5
    RESET_SEQUENCE = 6
    UPDATE_TABLE = 7
    UPDATE_INDEX = 8
    UPDATE_PRIMARY_KEY = 9
    UPDATE_FOREIGN_KEY = 10


class ImporterError(Exception):
    """Base class for importer failures."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        statement: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.statement = statement


class SchemaOperationError(ImporterError):
    """A DDL statement failed."""


class DataInsertError(ImporterError):
    """A seed data row could not be inserted."""


class SequenceResetError(ImporterError):
    """An auto-increment sequence could not be reset."""


class ForeignKeyError(ImporterError):
    """A foreign key constraint could not be added."""


class ImportAbortedError(ImporterError):
    """The run was aborted because ``die_on_error`` is enabled."""


class DescriptorLoadError(ImporterError):
    """A descriptor file could not be loaded."""


ERROR_TYPES: dict[ErrorCode, type[ImporterError]] = {
    ErrorCode.CREATE_TABLE: SchemaOperationError,
    ErrorCode.CREATE_INDEX: SchemaOperationError,
    ErrorCode.ADD_PRIMARY_KEY: SchemaOperationError,
    ErrorCode.ADD_FOREIGN_KEY: ForeignKeyError,
    ErrorCode.INSERT_DATA: DataInsertError,
    ErrorCode.RESET_SEQUENCE: SequenceResetError,
    ErrorCode.UPDATE_TABLE: SchemaOperationError,
    ErrorCode.UPDATE_INDEX: SchemaOperationError,
    ErrorCode.UPDATE_PRIMARY_KEY: SchemaOperationError,
    ErrorCode.UPDATE_FOREIGN_KEY: ForeignKeyError,
}
