# Fetch a remote .vsix before installing it

import logging
import os
import sys
import tempfile
import typing as t
from contextlib import contextmanager
from email.utils import parsedate_to_datetime
from pathlib import Path
from urllib.parse import unquote, urlparse

import requests


def is_url(location: str) -> bool:
    return urlparse(location).scheme in ("http", "https")


def download_vsix(url: str, dest_dir: Path) -> Path:

    filename = Path(unquote(urlparse(url).path)).name or "extension.vsix"
    if not filename.endswith(".vsix"):
        filename += ".vsix"
    file = dest_dir / filename

    print(f"downloading {url}", file=sys.stderr)
    r = requests.get(url)
    r.raise_for_status()
    file.write_bytes(r.content)

    if "Last-Modified" in r.headers:
        url_date = parsedate_to_datetime(r.headers["Last-Modified"])
        mtime = round(url_date.timestamp() * 1_000_000_000)
        os.utime(file, ns=(mtime, mtime))

    logging.debug(f"downloaded {len(r.content)} bytes to {file}")
    return file


@contextmanager
def local_vsix(location: str) -> t.Iterator[Path]:
    """
    Yield a local path for the package: URLs are downloaded to a temporary directory removed afterwards.
    """

    if not is_url(location):
        yield Path(location)
        return

    with tempfile.TemporaryDirectory(prefix="vsix-") as tmp:
        yield download_vsix(location, Path(tmp))
