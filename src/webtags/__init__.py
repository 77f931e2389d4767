"""
WebTags: git-backed bookmark and tag storage.

The local agent behind the browser extension. It keeps the
bookmark document on disk, encrypts it when asked, and syncs
it across devices through a git remote.
"""

import os

__version__ = "0.1.0"
__author__ = "WebTags"

WEBTAGS_HOME = os.environ.get("WEBTAGS_HOME", "~/.webtags")
