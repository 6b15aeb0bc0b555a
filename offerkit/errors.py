"""
Error types for the offer toolkit.

Provides one exception per failure mode of the mockup and offer pipeline,
each carrying structured details and user-facing recovery suggestions.
"""

from typing import Dict, List, Any


class OfferKitError(Exception):
    """Base exception for all offer toolkit errors."""

    def __init__(self, message: str, details: Dict[str, Any] = None, suggestions: List[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'details': self.details,
            'suggestions': self.suggestions
        }


class ValidationError(OfferKitError):
    """Raised when input is rejected before any network or canvas work."""
    pass


class LoadError(OfferKitError):
    """Raised when a remote image or product fetch fails."""
    pass


class LoadTimeoutError(LoadError):
    """Raised when a fetch does not complete within its bound."""

    def __init__(self, url: str, timeout_ms: int):
        super().__init__(
            f"Timed out after {timeout_ms}ms loading {url}",
            details={'url': url, 'timeout_ms': timeout_ms},
            suggestions=[
                "Check that the image host is reachable",
                "Try again in a moment"
            ]
        )


class EncodeError(OfferKitError):
    """Raised when local rasterization or encoding fails."""
    pass


class PersistError(OfferKitError):
    """Raised when a write to blob storage fails."""
    pass


class NotFoundError(OfferKitError):
    """Raised when the product catalog has no match."""
    pass


# Specific validation errors

class InvalidArticleNumberError(ValidationError):
    """Raised when an article number is not at least six digits."""

    def __init__(self, article_number: str):
        super().__init__(
            "Invalid article number. Use digits only, minimum 6 characters.",
            details={'article_number': article_number},
            suggestions=[
                "Enter the article number without letters or spaces",
                "Article numbers have at least six digits (e.g. 1914706)"
            ]
        )


class InvalidImageFormatError(ValidationError):
    """Raised when an uploaded logo is not a decodable image."""

    def __init__(self, filename: str, detected_type: str = None):
        super().__init__(
            f"Invalid image format: {filename}",
            details={
                'filename': filename,
                'detected_type': detected_type
            },
            suggestions=[
                "Use a PNG or JPG logo",
                "Ensure the file is not corrupted"
            ]
        )


class FileTooLargeError(ValidationError):
    """Raised when an uploaded logo exceeds the size limit."""

    def __init__(self, filename: str, size_mb: float, limit_mb: float):
        super().__init__(
            f"File too large: {filename} ({size_mb:.1f}MB exceeds {limit_mb:.1f}MB limit)",
            details={
                'filename': filename,
                'size_mb': size_mb,
                'limit_mb': limit_mb
            },
            suggestions=[
                f"Reduce file size to under {limit_mb:.1f}MB",
                "Export the logo at a lower resolution"
            ]
        )


class MissingCustomerNameError(ValidationError):
    """Raised when an offer is requested without a customer name."""

    def __init__(self):
        super().__init__(
            "Customer name is required",
            suggestions=["Enter the customer or company name before creating the offer"]
        )


def create_error_recovery_suggestions(error: Exception) -> List[str]:
    """Generate recovery suggestions for any error."""
    suggestions = []

    if isinstance(error, OfferKitError):
        suggestions.extend(error.suggestions)

    if not suggestions:
        if isinstance(error, NotFoundError):
            suggestions = ["Check the article number and search again"]
        elif isinstance(error, PersistError):
            suggestions = ["Storage is unavailable, try again shortly"]
        else:
            suggestions = [
                "Try the action again",
                "Contact support if the problem persists"
            ]

    return suggestions
