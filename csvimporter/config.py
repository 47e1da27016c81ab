"""
csvimporter.config - Centralised tunables.

Every other module imports from config instead of reading os.environ directly.
"""

from __future__ import annotations

import os


# -------------------------
# Reading
# -------------------------
# Bytes read from the source per I/O call; also the line ending sniff window.
CHUNK_SIZE        = int(os.environ.get("CSVIMPORTER_CHUNK_SIZE", "4096"))
DEFAULT_ENCODING  = os.environ.get("CSVIMPORTER_ENCODING", "utf-8")
DEFAULT_DELIMITER = os.environ.get("CSVIMPORTER_DELIMITER", ",")

# -------------------------
# Callbacks
# -------------------------
# Minimum number of seconds between two progress callbacks.
PROGRESS_INTERVAL = float(os.environ.get("CSVIMPORTER_PROGRESS_INTERVAL", "0.1"))
