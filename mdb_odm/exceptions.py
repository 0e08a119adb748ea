"""
Custom exceptions for MDB_ODM.

All errors raised by the mapper derive from DocumentMapperError, which keeps
compatibility with RuntimeError and carries an optional context dictionary.
"""

from typing import Any, Dict, Optional


class DocumentMapperError(RuntimeError):
    """
    Base exception for MDB_ODM errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (repository,
                 document_id, etc.)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            context: Optional dictionary with additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class ConfigurationError(DocumentMapperError):
    """
    Raised when configuration is invalid or missing.

    Raised when a repository cannot resolve a connection, or when
    connection settings fail validation.

    Attributes:
        message: Error message
        config_key: Configuration key that caused the error (if available)
        config_value: Configuration value that caused the error (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value


class ClassNotFoundError(DocumentMapperError, LookupError):
    """
    Raised when an entity class name does not resolve to a registered class.

    Attributes:
        class_name: The requested name, as passed by the caller
        qualified_name: The registry key the name was resolved to
    """

    def __init__(
        self,
        message: str,
        class_name: Optional[str] = None,
        qualified_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if class_name:
            context["class_name"] = class_name
        if qualified_name:
            context["qualified_name"] = qualified_name
        super().__init__(message, context=context)
        self.class_name = class_name
        self.qualified_name = qualified_name


class DocumentNotFoundError(DocumentMapperError, LookupError):
    """
    Raised when a document cannot be found by its identifier.

    Attributes:
        document_id: Identifier that was looked up
        repository: Name of the repository that was queried
    """

    def __init__(
        self,
        message: str,
        document_id: Optional[Any] = None,
        repository: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if document_id is not None:
            context["document_id"] = document_id
        if repository:
            context["repository"] = repository
        super().__init__(message, context=context)
        self.document_id = document_id
        self.repository = repository


class PersistenceError(DocumentMapperError):
    """
    Raised when the client layer fails to read or write documents.

    The original driver exception is always chained as ``__cause__``.
    Entities involved in a failed write keep their new/dirty state.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        repository: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if operation:
            context["operation"] = operation
        if repository:
            context["repository"] = repository
        super().__init__(message, context=context)
        self.operation = operation
        self.repository = repository


class UnknownFinderError(DocumentMapperError):
    """Raised when ``find`` is called with a finder type the repository lacks."""

    def __init__(
        self,
        message: str,
        finder: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if finder:
            context["finder"] = finder
        super().__init__(message, context=context)
        self.finder = finder
