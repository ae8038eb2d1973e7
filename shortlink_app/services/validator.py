"""
URL validation policies.

validate() is the syntactic/policy gate; is_safe() is a separate capability
so a reputation service can be plugged in without touching the URL service.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional
from urllib.parse import urlsplit

from shortlink_app.exceptions import ValidationError

ALLOWED_SCHEMES = ("http", "https")
# Other shorteners: refusing them prevents chained shortening
DEFAULT_BLACKLIST = ("bit.ly", "tinyurl.com")


class URLValidator(ABC):
    """Abstract validation policy"""

    @abstractmethod
    def validate(self, url: str) -> None:
        """
        Raise ValidationError if url must not be shortened.

        Args:
            url: Candidate URL as submitted by the client
        """
        pass

    @abstractmethod
    def is_safe(self, url: str) -> bool:
        """Return False if the target is known to be harmful"""
        pass


class DefaultURLValidator(URLValidator):
    """
    Scheme/host/blacklist checks with a permissive safety check.

    A host is blacklisted when it equals a listed domain or is one of its
    subdomains (www.bit.ly is rejected, notbit.ly is not).
    """

    def __init__(self, blacklisted_domains: Optional[Iterable[str]] = None):
        domains = DEFAULT_BLACKLIST if blacklisted_domains is None else blacklisted_domains
        self.blacklisted_domains = tuple(d.lower().strip(".") for d in domains)

    def validate(self, url: str) -> None:
        if url is None or not url.strip():
            raise ValidationError("URL cannot be empty")

        try:
            parts = urlsplit(url.strip())
            host = parts.hostname
            # Accessing .port forces validation of the netloc
            parts.port
        except ValueError as e:
            raise ValidationError(f"invalid URL format: {e}") from e

        if parts.scheme.lower() not in ALLOWED_SCHEMES:
            raise ValidationError("only HTTP(S) URLs are allowed")

        if not host:
            raise ValidationError("URL must have a host")

        blocked = self._blacklisted(host.lower())
        if blocked:
            raise ValidationError(f"domain {blocked} is blacklisted")

    def is_safe(self, url: str) -> bool:
        # TODO: call a reputation API (e.g. Google Safe Browsing) here
        return True

    def _blacklisted(self, host: str) -> Optional[str]:
        for domain in self.blacklisted_domains:
            if host == domain or host.endswith("." + domain):
                return domain
        return None
