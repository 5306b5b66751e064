"""Archive download over HTTPS."""

from pathlib import Path

import httpx
import structlog

from .errors import FetchFailed, WorkdirError

logger = structlog.get_logger(__name__)

DOWNLOAD_TIMEOUT = httpx.Timeout(30.0, read=120.0)


def _discard(path: Path) -> None:
    if path.is_file():
        path.unlink()


def auth_headers(token: str | None) -> dict[str, str]:
    if not token:
        return {}
    return {"Authorization": f"token {token}"}


def download_archive(
    url: str,
    dest: Path,
    *,
    token: str | None = None,
    client: httpx.Client | None = None,
) -> Path:
    """Stream ``url`` into ``dest``.

    Any non-2xx answer or transport error raises FetchFailed, and a failed
    write raises WorkdirError; neither leaves a file behind at ``dest``.
    """
    own_client = client is None
    if client is None:
        client = httpx.Client(follow_redirects=True, timeout=DOWNLOAD_TIMEOUT)

    logger.info("archive_download_start", url=url, authenticated=bool(token))
    try:
        with client.stream("GET", url, headers=auth_headers(token)) as response:
            if not response.is_success:
                hint = None
                if response.status_code == 404:
                    hint = "check the ref name; private repositories need GIT_TOKEN"
                elif response.status_code in (401, 403):
                    hint = "check that GIT_TOKEN is valid and has read access"
                raise FetchFailed(
                    f"Download failed: HTTP {response.status_code} for {url}", hint=hint
                )
            with open(dest, "wb") as f:
                for chunk in response.iter_bytes():
                    f.write(chunk)
    except httpx.HTTPError as e:
        _discard(dest)
        raise FetchFailed(f"Download failed: {e}") from e
    except FetchFailed:
        _discard(dest)
        raise
    except OSError as e:
        _discard(dest)
        raise WorkdirError(f"Cannot write archive to {dest}: {e.strerror or e}") from e
    finally:
        if own_client:
            client.close()

    logger.info("archive_downloaded", url=url, size=dest.stat().st_size)
    return dest
