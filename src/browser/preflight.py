"""
Reachability preflight check.

A plain HTTP GET against the page's server with the page's domain as the
virtual host. Cheap compared to launching Chromium, and it tells "server down"
apart from "page rendered but differs".
"""

from typing import Optional

import requests

from src.utils.logger import StructuredLogger, get_logger
from .exceptions import UnreachableError


CONNECT_TIMEOUT_SECONDS = 5
READ_TIMEOUT_SECONDS = 5


class ReachabilityProber:
    """
    Issues the preflight request for one page.

    Attributes:
        http_client: requests-like session (injectable for tests)
        timeout: (connect, read) timeouts in seconds
    """

    def __init__(
        self,
        http_client: Optional[requests.Session] = None,
        logger: Optional[StructuredLogger] = None,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        read_timeout: float = READ_TIMEOUT_SECONDS,
    ):
        self.http_client = http_client or requests.Session()
        self.logger = logger or get_logger(__name__)
        self.timeout = (connect_timeout, read_timeout)

    def get_status_code(self, server_ip: str, domain: str) -> int:
        """
        Send GET http://<server_ip or domain>/ with ``Host: domain``.

        Returns:
            HTTP status code of the response

        Raises:
            requests.RequestException: On transport errors
        """
        address = server_ip or domain
        response = self.http_client.get(
            f"http://{address}",
            headers={"Host": domain},
            timeout=self.timeout,
        )
        self.logger.info(
            "Preflight response received",
            operation="preflight",
            context={"domain": domain, "server": address, "status_code": response.status_code},
        )
        return response.status_code

    def probe(self, url: str, server_ip: str, domain: str) -> int:
        """
        Check the page is reachable before paying for a browser launch.

        Args:
            url: Page URL (reported in errors)
            server_ip: Address overriding DNS, "" for standard resolution
            domain: Domain sent as the Host header

        Returns:
            200

        Raises:
            UnreachableError: On transport error or any status other than 200
        """
        address = server_ip or domain
        try:
            status_code = self.get_status_code(server_ip, domain)
        except requests.RequestException as e:
            self.logger.error(
                "Pre-flight check failed",
                operation="preflight",
                context={"domain": domain, "server": address},
                error=str(e),
            )
            raise UnreachableError(url, address, cause=e) from e

        if status_code != 200:
            self.logger.error(
                "Pre-flight check returned unexpected status",
                operation="preflight",
                context={"domain": domain, "server": address, "status_code": status_code},
            )
            raise UnreachableError(url, address, status_code=status_code)

        return status_code
