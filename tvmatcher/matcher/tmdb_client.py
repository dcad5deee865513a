# tmdb_client.py
import re

import requests
from loguru import logger
from pydantic import ValidationError

from tvmatcher.core.errors import InputError, UpstreamError, error_context
from tvmatcher.matcher.http_utils import (
    REQUEST_TIMEOUT,
    check_response,
    json_body,
    retry_network_operation,
)
from tvmatcher.matcher.models import TMDBSeason, TMDBShow

TMDB_API_URL = "https://api.themoviedb.org/3"


def normalized_token_string(text: str) -> str:
    """Lowercase alphanumeric tokens joined by single spaces."""
    return " ".join(re.sub(r"[\W_]+", " ", text.lower()).split())


def token_overlap_score(left: str, right: str) -> int:
    """Shared-token ratio of two names scaled to 0-25."""
    left_tokens = set(left.split())
    right_tokens = set(right.split())
    if not left_tokens or not right_tokens:
        return 0
    overlap = len(left_tokens & right_tokens)
    return int(overlap / max(len(left_tokens), len(right_tokens)) * 25)


def name_match_score(name: str, query: str) -> int:
    """Score a show name against a normalized query.

    100 exact, 75 prefix either way, 50 substring either way,
    otherwise 25 plus up to 25 for token overlap.
    """
    normalized = normalized_token_string(name)
    if normalized == query:
        return 100
    if normalized.startswith(query) or query.startswith(normalized):
        return 75
    if query in normalized or normalized in query:
        return 50
    return 25 + token_overlap_score(normalized, query)


def show_score(show: TMDBShow, query: str) -> int:
    return max(name_match_score(show.name, query), name_match_score(show.original_name or "", query))


def rank_shows(query: str, shows: list[TMDBShow]) -> list[TMDBShow]:
    """Order search results by name score, keeping TMDB order on ties."""
    normalized_query = normalized_token_string(query)
    return sorted(shows, key=lambda s: -show_score(s, normalized_query))


class TMDBClient:
    """Minimal TMDB v3 client for show search and season listings.

    Accepts either a v4 read access token (sent as a Bearer header) or a
    v3 API key (sent as the ``api_key`` query parameter).
    """

    def __init__(self, api_key: str, session: requests.Session | None = None):
        api_key = api_key.strip()
        if not api_key:
            raise InputError("TMDB access token is not configured")
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self._params: dict[str, str] = {}
        # v4 tokens are long JWTs
        if len(api_key) > 40:
            self.session.headers["Authorization"] = f"Bearer {api_key}"
        else:
            self._params["api_key"] = api_key

    @retry_network_operation(max_retries=3, base_delay=1.0)
    def _get(self, path: str, params: dict | None = None) -> requests.Response:
        url = f"{TMDB_API_URL}{path}"
        logger.debug(f"GET {url} params={params}")
        return self.session.get(
            url, params={**self._params, **(params or {})}, timeout=REQUEST_TIMEOUT
        )

    def _get_json(self, path: str, params: dict | None = None) -> dict:
        with error_context(
            error_types=(requests.RequestException,),
            default_message=f"TMDB request failed for {path}",
            wrap_as=UpstreamError,
        ):
            response = self._get(path, params)
        check_response(response, path, "TMDB")
        return json_body(response, path, "TMDB")

    def _search(self, name: str) -> list[TMDBShow]:
        payload = self._get_json(
            "/search/tv", {"query": name, "include_adult": "false", "language": "en-US"}
        )
        try:
            return [TMDBShow.model_validate(item) for item in payload.get("results", [])]
        except ValidationError as e:
            raise UpstreamError(f"Unexpected TMDB search payload: {e}", endpoint="/search/tv") from e

    def search_show(self, name: str) -> TMDBShow | None:
        """Best matching show for a name, or None when TMDB has no results."""
        results = self._search(name)
        logger.debug(f"TMDB search for '{name}': {len(results)} results")
        if not results:
            return None
        best = rank_shows(name, results)[0]
        logger.info(f"Matched '{name}' to TMDB: '{best.name}' (ID: {best.id})")
        return best

    def search_shows(self, name: str, limit: int = 10) -> list[TMDBShow]:
        """Search results ordered by how well their names match."""
        if limit <= 0:
            return []
        return rank_shows(name, self._search(name))[:limit]

    def fetch_season(self, show_id: int, season_number: int) -> TMDBSeason | None:
        """Episode listing of one season, or None if TMDB does not know the season."""
        path = f"/tv/{show_id}/season/{season_number}"
        with error_context(
            error_types=(requests.RequestException,),
            default_message=f"TMDB request failed for {path}",
            wrap_as=UpstreamError,
        ):
            response = self._get(path, {"language": "en-US"})
        if response.status_code == 404:
            logger.warning(f"TMDB has no season {season_number} for show {show_id}")
            return None
        check_response(response, path, "TMDB")
        payload = json_body(response, path, "TMDB")
        try:
            return TMDBSeason.model_validate(payload)
        except ValidationError as e:
            raise UpstreamError(f"Unexpected TMDB season payload: {e}", endpoint=path) from e
