"""
Tests for the URL validation policy.
"""
import pytest

from shortlink_app.exceptions import ValidationError
from shortlink_app.services.validator import DefaultURLValidator


class TestDefaultURLValidator:

    @pytest.mark.parametrize("url", [
        "https://example.com",
        "https://example.com/path",
        "http://example.com/path?q=1#frag",
        "HTTPS://Example.COM/",
        "https://sub.example.com:8443/",
        "https://notbit.ly/",
    ])
    def test_accepts(self, url):
        DefaultURLValidator().validate(url)

    @pytest.mark.parametrize("url", [
        "",
        "   ",
        "example.com",
        "ftp://example.com/file",
        "ftp://x",
        "javascript:alert(1)",
        "https://",
        "http://[::1",
        "https://example.com:99999/",
        "https://bit.ly/abc",
        "https://www.tinyurl.com/abc",
    ])
    def test_rejects(self, url):
        with pytest.raises(ValidationError):
            DefaultURLValidator().validate(url)

    def test_custom_blacklist(self):
        validator = DefaultURLValidator(["evil.example"])

        validator.validate("https://bit.ly/abc")
        with pytest.raises(ValidationError, match="evil.example"):
            validator.validate("https://cdn.evil.example/x")

    def test_is_safe_by_default(self):
        assert DefaultURLValidator().is_safe("https://example.com") is True
