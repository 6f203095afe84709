from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Callable, Optional

import requests
from tqdm import tqdm

logger = logging.getLogger(__name__)

# (key, current, total); total is 0 when the size is unknown.
ProgressCallback = Callable[[str, int, int], None]


def sha256_file(path: Path) -> str:
    hasher = hashlib.sha256()
    with path.open("rb") as handle:
        for block in iter(lambda: handle.read(1 << 20), b""):
            hasher.update(block)
    return hasher.hexdigest()


def download_file(
    url: str,
    destination: Path,
    expected_sha256: Optional[str] = None,
    chunk_size: int = 1 << 20,
    timeout: float = 60.0,
    progress: Optional[ProgressCallback] = None,
) -> Path:
    """
    Stream ``url`` into ``destination`` through a ``.part`` file.

    The bytes received so far are reported to ``progress`` under the key
    ``download:<file name>`` after every chunk. A digest mismatch removes the
    file and raises ``ValueError``.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    partial = destination.with_name(destination.name + ".part")
    key = f"download:{destination.name}"

    logger.info("Fetching weights %s -> %s", url, destination)
    with requests.get(url, stream=True, timeout=timeout) as response:
        response.raise_for_status()
        total = max(int(response.headers.get("content-length") or 0), 0)
        received = 0
        with tqdm(total=total or None, unit="B", unit_scale=True, desc=destination.name) as bar:
            with partial.open("wb") as sink:
                for chunk in response.iter_content(chunk_size=chunk_size):
                    if not chunk:
                        continue
                    sink.write(chunk)
                    received += len(chunk)
                    bar.update(len(chunk))
                    if progress is not None:
                        progress(key, received, total)
    partial.replace(destination)

    if expected_sha256 and sha256_file(destination) != expected_sha256.lower():
        destination.unlink(missing_ok=True)
        raise ValueError(f"Checksum mismatch for {destination}. Expected {expected_sha256}.")
    return destination
