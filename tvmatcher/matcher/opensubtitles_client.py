"""OpenSubtitles REST API (v1) client.

Searches reference subtitles by the show's TMDB id, season and episode and
downloads the raw subtitle payload. Payloads may arrive gzip-compressed;
decompression is left to ``similarity.decode_subtitle_bytes``.
"""

from urllib.parse import urlparse

import requests
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from tvmatcher import __version__
from tvmatcher.core.errors import InputError, UpstreamError, error_context
from tvmatcher.matcher.http_utils import (
    REQUEST_TIMEOUT,
    check_response,
    json_body,
    retry_network_operation,
)
from tvmatcher.matcher.models import SubtitleCandidate

OPENSUBTITLES_API_URL = "https://api.opensubtitles.com/api/v1"
OPENSUBTITLES_DOMAIN = "opensubtitles.com"


class _File(BaseModel):
    file_id: int
    file_name: str | None = None


class _Attributes(BaseModel):
    language: str | None = None
    download_count: int | None = None
    release: str | None = None
    files: list[_File] = Field(default_factory=list)


class _SubtitleData(BaseModel):
    id: str | int = ""
    attributes: _Attributes


class _SearchResponse(BaseModel):
    data: list[_SubtitleData] = Field(default_factory=list)


def normalize_base_url(base_url: str) -> str | None:
    """Turn the login response's ``base_url`` into an API root.

    Only hosts in the opensubtitles.com domain (e.g. vip-api) are accepted.
    """
    trimmed = base_url.strip()
    if not trimmed:
        return None
    if "://" not in trimmed:
        trimmed = f"https://{trimmed}"
    parsed = urlparse(trimmed)
    hostname = (parsed.hostname or "").lower()
    if hostname != OPENSUBTITLES_DOMAIN and not hostname.endswith(f".{OPENSUBTITLES_DOMAIN}"):
        return None
    if "/api/v1" in parsed.path:
        return trimmed.rstrip("/")
    return f"{trimmed.rstrip('/')}/api/v1"


class OpenSubtitlesClient:
    """Client for the OpenSubtitles.com REST API.

    Logs in lazily on the first request and reuses the token for the run.
    """

    def __init__(
        self,
        api_key: str,
        username: str,
        password: str,
        session: requests.Session | None = None,
    ):
        if not (api_key and username and password):
            raise InputError("OpenSubtitles API key, username and password are required")
        self.username = username
        self.password = password
        self.base_url = OPENSUBTITLES_API_URL
        self.token: str | None = None
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Api-Key": api_key,
                "User-Agent": f"tvmatcher {__version__}",
                "Accept": "application/json",
            }
        )

    @retry_network_operation(max_retries=3, base_delay=1.0)
    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        logger.debug(f"{method} {url}")
        return self.session.request(method, url, timeout=REQUEST_TIMEOUT, **kwargs)

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        with error_context(
            error_types=(requests.RequestException,),
            default_message=f"OpenSubtitles request failed for {url}",
            wrap_as=UpstreamError,
        ):
            response = self._request(method, url, **kwargs)
        return check_response(response, url, "OpenSubtitles")

    def _ensure_login(self) -> None:
        if self.token is None:
            self.login()

    def login(self) -> None:
        """Exchange the credentials for a bearer token."""
        url = f"{self.base_url}/login"
        response = self._send("POST", url, json={"username": self.username, "password": self.password})
        payload = json_body(response, url, "OpenSubtitles")
        token = payload.get("token") if isinstance(payload, dict) else None
        if not token:
            raise UpstreamError("OpenSubtitles login response has no token", endpoint=url)

        self.token = token
        self.session.headers["Authorization"] = f"Bearer {token}"
        base_url = normalize_base_url(payload.get("base_url") or "")
        if base_url:
            self.base_url = base_url
        logger.info(f"Logged in to OpenSubtitles user='{self.username}' base_url='{self.base_url}'")

    def search_subtitles(
        self, show_id: int, season: int, episode: int, language: str = "en"
    ) -> list[SubtitleCandidate]:
        """Subtitles for one episode, most downloaded first."""
        self._ensure_login()
        url = f"{self.base_url}/subtitles"
        params = {
            "parent_tmdb_id": show_id,
            "season_number": season,
            "episode_number": episode,
            "languages": language,
            "order_by": "download_count",
            "order_direction": "desc",
        }
        response = self._send("GET", url, params=params)
        try:
            decoded = _SearchResponse.model_validate(json_body(response, url, "OpenSubtitles"))
        except ValidationError as e:
            snippet = (response.text or "")[:500]
            raise UpstreamError(f"Unexpected OpenSubtitles search payload: {snippet}", endpoint=url) from e

        candidates = []
        for item in decoded.data:
            first_file = item.attributes.files[0] if item.attributes.files else None
            candidates.append(
                SubtitleCandidate(
                    subtitle_id=str(item.id),
                    file_id=first_file.file_id if first_file else None,
                    file_name=first_file.file_name if first_file else None,
                    language=item.attributes.language,
                    download_count=item.attributes.download_count,
                    release=item.attributes.release,
                )
            )
        logger.debug(
            f"OpenSubtitles search show={show_id} season={season} episode={episode}: "
            f"{len(candidates)} results"
        )
        return candidates

    def download(self, file_id: int) -> bytes:
        """Download the raw payload of a subtitle file."""
        self._ensure_login()
        url = f"{self.base_url}/download"
        response = self._send("POST", url, json={"file_id": file_id})
        payload = json_body(response, url, "OpenSubtitles")
        link = payload.get("link") if isinstance(payload, dict) else None
        if not link:
            raise UpstreamError(f"OpenSubtitles download response has no link for file {file_id}", endpoint=url)

        file_response = self._send("GET", link)
        logger.debug(f"Downloaded subtitle file_id={file_id} bytes={len(file_response.content)}")
        return file_response.content
