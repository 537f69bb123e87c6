"""
Exceptions raised while turning an inbound event into page identities.
"""


class MalformedRequestError(ValueError):
    """
    Raised when the inbound comparison request cannot be parsed.

    No browser work is attempted for a malformed request.
    """

    pass


class DomainExtractionError(ValueError):
    """
    Raised when no domain can be derived from a page URL.

    Treated as fatal for the invocation: the session cannot build its DNS
    override, screenshot path or storage key without a domain.
    """

    def __init__(self, url: str):
        super().__init__(f"Can't extract domain from {url!r}")
        self.url = url
