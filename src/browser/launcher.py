"""
Chromium launch configuration.

Two profiles: an interactive one for local debugging (APP_ENV=dev) and a
headless one hardened for the Lambda sandbox. Both can pin the session's
domain to a specific server through Chrome host rules.
"""

import os
import tempfile
from typing import List, Optional

from selenium import webdriver
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service

from src.config.settings import Settings
from src.utils.logger import StructuredLogger, get_logger

logger = get_logger(__name__)


# Flags recommended for serverless environments
# see https://github.com/alixaxel/chrome-aws-lambda/blob/master/source/index.ts
SERVERLESS_FLAGS = [
    "--allow-running-insecure-content",
    "--autoplay-policy=user-gesture-required",
    "--disable-component-update",
    "--disable-domain-reliability",
    "--disable-features=AudioServiceOutOfProcess,IsolateOrigins,site-per-process",
    "--disable-print-preview",
    "--disable-setuid-sandbox",
    "--disable-site-isolation-trials",
    "--disable-speech-api",
    "--disable-web-security",
    "--disable-dev-shm-usage",
    "--disk-cache-size=33554432",
    "--enable-features=SharedArrayBuffer",
    "--hide-scrollbars",
    "--ignore-gpu-blocklist",
    "--in-process-gpu",
    "--mute-audio",
    "--no-default-browser-check",
    "--no-pings",
    "--no-sandbox",
    "--no-zygote",
    "--single-process",
    "--use-gl=swiftshader",
    "--window-size=1920,1080",
]

# Chromium locks its user data dir, so every live browser needs its own
PROFILE_DIR_PREFIX = "chrome-"

INTERACTIVE_FLAGS = [
    "--auto-open-devtools-for-tabs",
]


def host_rule(domain: str, server_ip: str) -> str:
    """Chrome host-rules value mapping ``domain`` onto ``server_ip``."""
    return f"MAP {domain} {server_ip}"


def create_profile_dir(settings: Settings, domain: str) -> str:
    """Create a fresh scratch directory for one browser under TEMPORARY_STORAGE."""
    os.makedirs(settings.temporary_storage, exist_ok=True)
    return tempfile.mkdtemp(prefix=f"{PROFILE_DIR_PREFIX}{domain}-", dir=settings.temporary_storage)


def scratch_flags(profile_dir: str) -> List[str]:
    """Point every Chromium write location into ``profile_dir`` (Lambda only allows writes under /tmp)."""
    return [
        f"--user-data-dir={os.path.join(profile_dir, 'user-data')}",
        f"--data-path={os.path.join(profile_dir, 'data-path')}",
        f"--homedir={profile_dir}",
        f"--disk-cache-dir={os.path.join(profile_dir, 'cache-dir')}",
    ]


def build_chrome_options(
    settings: Settings,
    domain: str,
    server_ip: str = "",
    profile_dir: Optional[str] = None,
    log: Optional[StructuredLogger] = None,
) -> Options:
    """
    Build ChromeOptions for the configured deployment profile.

    Args:
        settings: Process configuration (selects the profile)
        domain: Domain the session is bound to
        server_ip: Address to resolve ``domain`` to, "" for standard DNS
        profile_dir: Private scratch directory of this browser (see create_profile_dir)

    Returns:
        Selenium ChromeOptions
    """
    log = log or logger
    options = Options()

    if settings.is_dev():
        for flag in INTERACTIVE_FLAGS:
            options.add_argument(flag)
    else:
        options.binary_location = settings.chrome_binary_path
        options.add_argument("--headless=new")
        for flag in SERVERLESS_FLAGS:
            options.add_argument(flag)

    if profile_dir:
        for flag in scratch_flags(profile_dir):
            options.add_argument(flag)

    # custom DNS resolver
    # see https://datacadamia.com/web/browser/chrome#dns_resolver
    if server_ip:
        log.info(
            "Setting custom DNS resolver",
            operation="launch_browser",
            context={"domain": domain, "server_ip": server_ip},
        )
        options.add_argument(f"--host-rules={host_rule(domain, server_ip)}")
    else:
        log.info(
            "Using default DNS resolver",
            operation="launch_browser",
            context={"domain": domain},
        )

    # certificates won't match the server once DNS is overridden
    options.accept_insecure_certs = True
    # navigation waits are driven explicitly from network events
    options.page_load_strategy = "none"
    options.set_capability("goog:loggingPrefs", {"performance": "ALL"})

    return options


def create_driver(settings: Settings, options: Options) -> webdriver.Chrome:
    """Start ChromeDriver and Chromium with the given options."""
    if settings.chromedriver_path:
        logger.info(
            "Using ChromeDriver binary",
            operation="launch_browser",
            context={"path": settings.chromedriver_path},
        )
        service = Service(executable_path=settings.chromedriver_path)
    else:
        logger.warning(
            "ChromeDriver path not configured; falling back to Selenium Manager",
            operation="launch_browser",
        )
        service = Service()

    return webdriver.Chrome(service=service, options=options)
