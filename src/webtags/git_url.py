"""Git remote URL parsing and SSH/HTTPS conversion."""

from __future__ import annotations

import re
from enum import Enum

from .errors import InvalidRemoteUrlError

SSH_URL_PATTERN = re.compile(
    r"^(?:ssh://git@([^/]+)/(.+?)|git@([^:]+):(.+?))(?:\.git)?$"
)
HTTPS_URL_PATTERN = re.compile(r"^https?://([^/]+)/(.+?)(?:\.git)?$")


class GitUrlType(str, Enum):
    """Transport a remote URL uses."""

    HTTPS = "https"
    SSH = "ssh"


def parse_git_url(url: str) -> GitUrlType:
    """Classify a remote URL.

    Raises:
        InvalidRemoteUrlError: If the URL is neither http(s) nor SSH.
    """
    if HTTPS_URL_PATTERN.match(url):
        return GitUrlType.HTTPS
    if SSH_URL_PATTERN.match(url):
        return GitUrlType.SSH
    raise InvalidRemoteUrlError(f"Invalid git URL format: {url}")


def convert_ssh_to_https(url: str) -> str:
    match = SSH_URL_PATTERN.match(url)
    if not match:
        raise InvalidRemoteUrlError("Invalid SSH URL format")
    host = match.group(1) or match.group(3)
    path = match.group(2) or match.group(4)
    return f"https://{host}/{path}.git"


def convert_https_to_ssh(url: str) -> str:
    match = HTTPS_URL_PATTERN.match(url)
    if not match:
        raise InvalidRemoteUrlError("Invalid HTTPS URL format")
    host, path = match.group(1), match.group(2)
    return f"git@{host}:{path}.git"
