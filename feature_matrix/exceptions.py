"""
Feature Matrix Exceptions - Error hierarchy for the viz service client.

RemoteError and ProtocolError are the two failure kinds the loader reacts to:
per-subject they degrade a batch, for the aggregate PCA call they are fatal.
"""

from datetime import datetime
from typing import Any, Optional


class FeatureMatrixError(Exception):
    """Base exception for all feature matrix errors."""

    def __init__(
        self,
        message: str,
        study_number: Optional[int] = None,
        subject_id: Optional[int] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.study_number = study_number
        self.subject_id = subject_id
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "study_number": self.study_number,
            "subject_id": self.subject_id,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.study_number is not None:
            parts.append(f"[study={self.study_number}]")
        if self.subject_id is not None:
            parts.append(f"[subject={self.subject_id}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class RemoteError(FeatureMatrixError):
    """Non-success HTTP response or transport failure talking to the viz service."""

    def __init__(
        self,
        message: str,
        study_number: Optional[int] = None,
        subject_id: Optional[int] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, study_number, subject_id, original_error, context)
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "response_body": self.response_body,
            "request_url": self.request_url,
        })
        return data

    def is_server_error(self) -> bool:
        """Check if error is server-side."""
        return self.status_code is not None and 500 <= self.status_code < 600

    def is_client_error(self) -> bool:
        """Check if error is client-side."""
        return self.status_code is not None and 400 <= self.status_code < 500

    def is_transport_error(self) -> bool:
        """True when no HTTP status was received at all."""
        return self.status_code is None


class ProtocolError(FeatureMatrixError):
    """Response body did not have the expected shape."""

    def __init__(
        self,
        message: str,
        study_number: Optional[int] = None,
        subject_id: Optional[int] = None,
        field_name: Optional[str] = None,
        raw_data: Optional[Any] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, study_number, subject_id, original_error, context)
        self.field_name = field_name
        self.raw_data = raw_data

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "field_name": self.field_name,
            "raw_data": str(self.raw_data)[:500] if self.raw_data else None,  # Truncate
        })
        return data


class ConfigurationError(FeatureMatrixError):
    """Invalid loader or client configuration."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, original_error=original_error, context=context)
        self.config_key = config_key

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data
