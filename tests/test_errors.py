"""
Unit tests for the error handling system.

Tests the exception hierarchy, structured details, suggestions and the
recovery suggestion helper.
"""

import pytest
from offerkit.errors import (
    OfferKitError, ValidationError, LoadError, LoadTimeoutError, EncodeError,
    PersistError, NotFoundError, InvalidArticleNumberError, InvalidImageFormatError,
    FileTooLargeError, MissingCustomerNameError, create_error_recovery_suggestions
)


class TestOfferKitError:
    """Test the base OfferKitError class."""

    def test_basic_error_creation(self):
        error = OfferKitError("Test error message")

        assert str(error) == "Test error message"
        assert error.message == "Test error message"
        assert error.details == {}
        assert error.suggestions == []

    def test_error_to_dict(self):
        error = OfferKitError("Test", details={'key': 'value'}, suggestions=['suggestion'])

        result = error.to_dict()

        assert result['error_type'] == 'OfferKitError'
        assert result['message'] == 'Test'
        assert result['details'] == {'key': 'value'}
        assert result['suggestions'] == ['suggestion']


class TestTaxonomy:
    """Every failure mode derives from the common base."""

    @pytest.mark.parametrize('error_type', [ValidationError, LoadError, EncodeError, PersistError, NotFoundError])
    def test_subclasses_base(self, error_type):
        assert issubclass(error_type, OfferKitError)

    def test_timeout_is_a_load_error(self):
        error = LoadTimeoutError("https://example.com/a.jpg", 5000)

        assert isinstance(error, LoadError)
        assert error.details == {'url': "https://example.com/a.jpg", 'timeout_ms': 5000}
        assert "5000ms" in str(error)

    def test_validation_errors_are_validation_errors(self):
        for error in (InvalidArticleNumberError("12ab"), InvalidImageFormatError("x.txt"),
                      FileTooLargeError("big.png", 7.5, 5.0), MissingCustomerNameError()):
            assert isinstance(error, ValidationError)


class TestSpecificErrorTypes:
    """Test specific error type implementations."""

    def test_invalid_article_number(self):
        error = InvalidArticleNumberError("12345")

        assert "minimum 6" in str(error)
        assert error.details['article_number'] == "12345"
        assert len(error.suggestions) > 0

    def test_file_too_large(self):
        error = FileTooLargeError("logo.png", 7.25, 5.0)

        assert "7.2MB exceeds 5.0MB" in str(error) or "7.3MB exceeds 5.0MB" in str(error)
        assert error.details['limit_mb'] == 5.0
        assert any("5.0MB" in s for s in error.suggestions)

    def test_invalid_image_format(self):
        error = InvalidImageFormatError("notes.txt", "text/plain")

        assert error.details == {'filename': "notes.txt", 'detected_type': "text/plain"}


class TestRecoverySuggestions:

    def test_uses_error_suggestions(self):
        error = InvalidArticleNumberError("abc")
        assert create_error_recovery_suggestions(error) == error.suggestions

    def test_not_found_default(self):
        suggestions = create_error_recovery_suggestions(NotFoundError("nope"))
        assert any("article number" in s for s in suggestions)

    def test_generic_exception(self):
        suggestions = create_error_recovery_suggestions(RuntimeError("boom"))
        assert len(suggestions) == 2
