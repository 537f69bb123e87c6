"""URL helpers."""

from urllib.parse import urlsplit

from src.domain.exceptions import DomainExtractionError


def get_domain_from_url(url: str) -> str:
    """
    Return the lowercase host name of ``url`` without port or credentials.

    Scheme-less inputs such as ``example.com/path`` are treated as http URLs.

    Raises:
        DomainExtractionError: If the URL carries no host
    """
    if not url or not url.strip():
        raise DomainExtractionError(url)

    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"http://{candidate}"

    try:
        host = urlsplit(candidate).hostname
    except ValueError as e:
        raise DomainExtractionError(url) from e

    if not host:
        raise DomainExtractionError(url)
    return host
