"""Export of generated output files to the local output directory"""

import asyncio
import logging
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Iterable, List, Optional, Union
from urllib.parse import urlsplit

import requests

from errors import DownloadStreamError, MalformedUrlError
from handlers.helpers import color, prefix, ssam_log, ssam_warn

logger = logging.getLogger("ssam-replicate")

TIMESTAMP_FORMAT = "%Y.%m.%d-%H.%M.%S"
CHUNK_SIZE = 64 * 1024
DOWNLOAD_TIMEOUT = 60


def format_datetime(date: Optional[datetime] = None) -> str:
    """Format a local datetime as e.g. "2022.12.29-14.22.34" """
    return (date or datetime.now()).strftime(TIMESTAMP_FORMAT)


def ensure_dir(out_dir: Union[str, Path]) -> bool:
    """Create the output directory if it is missing.

    Returns True only when the directory was created by this call. Failures are
    logged and never raised.
    """
    path = Path(out_dir)
    if path.exists():
        return False
    try:
        path.mkdir(parents=True)
    except FileExistsError:
        # another request created it first
        return False
    except OSError as e:
        logger.error(f"{prefix()} {color(str(e), 'yellow')}")
        return False
    logger.info(f"{prefix()} created a new directory at {path.resolve()}")
    return True


def filename_from_url(url: str) -> str:
    """Return the last path segment of an URL"""
    try:
        parsed = urlsplit(url)
    except (TypeError, ValueError) as e:
        raise MalformedUrlError(f"Invalid URL: {url!r} ({e})") from e
    if not parsed.scheme or not parsed.netloc:
        raise MalformedUrlError(f"Invalid URL: {url!r}")
    return parsed.path.split("/")[-1]


def build_export_path(
    out_dir: Union[str, Path],
    url: str,
    job_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Path:
    """Destination for an exported file: <timestamp>-[<job_id>-]<basename>"""
    filename = filename_from_url(url)
    stamp = format_datetime(now)
    name = f"{stamp}-{job_id}-{filename}" if job_id else f"{stamp}-{filename}"
    return Path(out_dir).resolve() / name


async def download_to_file(url: str, dest: Path, timeout: float = DOWNLOAD_TIMEOUT, chunk_size: int = CHUNK_SIZE) -> int:
    """Stream a remote file to dest without holding it in memory.

    Opening the request and every chunk read are separate executor calls, so a
    large download only borrows a worker thread for one chunk at a time. A
    partially written file is left in place when the stream breaks.
    """
    loop = asyncio.get_running_loop()
    written = 0
    try:
        response = await loop.run_in_executor(None, partial(requests.get, url, stream=True, timeout=timeout))
    except requests.RequestException as e:
        raise DownloadStreamError(str(e)) from e
    try:
        if response.status_code >= 400:
            raise DownloadStreamError(f"Download of {url} failed with status {response.status_code}")
        chunks = iter(response.iter_content(chunk_size=chunk_size))
        with open(dest, "wb") as f:
            while True:
                chunk = await loop.run_in_executor(None, next, chunks, None)
                if chunk is None:
                    break
                if chunk:
                    f.write(chunk)
                    written += len(chunk)
    except (requests.RequestException, OSError) as e:
        raise DownloadStreamError(str(e)) from e
    finally:
        response.close()
    return written


async def save_remote_file(
    url: str,
    client,
    out_dir: Union[str, Path],
    log: bool = True,
    job_id: Optional[str] = None,
) -> Optional[Path]:
    """Download one output file into out_dir.

    Raises MalformedUrlError when the URL cannot be parsed. Download failures are
    reported to the client as a warning and None is returned.
    """
    file_path = build_export_path(out_dir, url, job_id)
    try:
        await download_to_file(url, file_path)
    except DownloadStreamError as e:
        await ssam_warn(f"{prefix()} {color(str(e), 'yellow')}", client, log)
        return None

    await ssam_log(f"{prefix()} {file_path} exported", client, log)
    return file_path


async def export_outputs(
    urls: Iterable[str],
    client,
    out_dir: Union[str, Path],
    log: bool = True,
    job_id: Optional[str] = None,
) -> List[Path]:
    """Export every URL in order, one at a time"""
    exported = []
    for url in urls:
        try:
            path = await save_remote_file(url, client, out_dir, log=log, job_id=job_id)
        except MalformedUrlError as e:
            await ssam_warn(f"{prefix()} {color(str(e), 'yellow')}", client, log)
            continue
        if path is not None:
            exported.append(path)
    return exported


def output_urls(output) -> List[str]:
    """Normalize a prediction output to a list of URLs"""
    if isinstance(output, str):
        return [output]
    if isinstance(output, (list, tuple)):
        return [item for item in output if isinstance(item, str)]
    return []
