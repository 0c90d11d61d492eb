import aiohttp
import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol

from repohub.domain.exceptions import ApiError, UnauthorizedError
from repohub.domain.models import Platform, Repository
from repohub.infrastructure.acl import BitbucketTranslator, GitHubTranslator, GitLabTranslator

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=30, connect=10)
USER_AGENT = "repohub"


class RepositorySource(Protocol):
    """Anything that can turn a token into the repositories it can see."""

    async def get_repositories(self, token: str) -> List[Repository]:
        ...


class PlatformClient:
    """
    Base client for a hosting platform's "list my repositories" endpoint.
    Subclasses describe the request and the response shape; this class handles
    the HTTP exchange and maps failures onto ApiError.
    """

    platform: Platform
    translator: Any
    unauthorized_message = "Unauthorized: invalid token or insufficient scope."

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session

    def _request(self, token: str) -> Dict[str, Any]:
        """Returns keyword arguments for `session.get`, including the url."""
        raise NotImplementedError

    def _extract_nodes(self, data: Any) -> List[Dict[str, Any]]:
        if not isinstance(data, list):
            raise ValueError(f"Expected a JSON array from {self.platform.value}.")
        return data

    async def get_repositories(self, token: str) -> List[Repository]:
        """
        Fetches the first page of repositories owned by the token's user.

        Raises:
            UnauthorizedError: the platform answered 401.
            ApiError: any other failure, carrying the HTTP status when there is one.
        """
        try:
            request = self._request(token)
            if self._session is not None:
                data = await self._fetch(self._session, request)
            else:
                async with aiohttp.ClientSession(timeout=REQUEST_TIMEOUT) as session:
                    data = await self._fetch(session, request)

            repositories = [self.translator.to_domain(node) for node in self._extract_nodes(data) if node]
        except ApiError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Error fetching {self.platform.value} repositories: {e}")
            raise ApiError(f"Failed to fetch repositories from {self.platform.value}.") from e

        logger.info(f"Fetched {len(repositories)} repositories from {self.platform.value}.")
        return repositories

    async def _fetch(self, session: aiohttp.ClientSession, request: Dict[str, Any]) -> Any:
        url = request.pop("url")
        async with session.get(url, timeout=REQUEST_TIMEOUT, **request) as response:
            if response.status == 401:
                raise UnauthorizedError(self.unauthorized_message)
            if response.status >= 400:
                raise ApiError(
                    f"{self.platform.value} API request failed: {response.reason}",
                    status=response.status,
                )
            return await response.json()


class GitHubClient(PlatformClient):
    platform = Platform.GITHUB
    translator = GitHubTranslator
    unauthorized_message = "Unauthorized: Invalid GitHub token or insufficient scope."
    api_url = "https://api.github.com"

    def _request(self, token: str) -> Dict[str, Any]:
        return {
            "url": f"{self.api_url}/user/repos",
            "params": {"type": "owner", "sort": "updated", "per_page": str(PAGE_SIZE)},
            "headers": {
                "Authorization": f"token {token}",
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": USER_AGENT,
            },
        }


class GitLabClient(PlatformClient):
    platform = Platform.GITLAB
    translator = GitLabTranslator
    unauthorized_message = "Unauthorized: Invalid GitLab token or insufficient scope."
    api_url = "https://gitlab.com/api/v4"

    def _request(self, token: str) -> Dict[str, Any]:
        return {
            "url": f"{self.api_url}/projects",
            "params": {"owned": "true", "simple": "true", "per_page": str(PAGE_SIZE)},
            "headers": {"Authorization": f"Bearer {token}", "User-Agent": USER_AGENT},
        }


class BitbucketClient(PlatformClient):
    """Bitbucket Cloud client. Tokens are app passwords in the form `username:app_password`."""

    platform = Platform.BITBUCKET
    translator = BitbucketTranslator
    unauthorized_message = "Unauthorized: Invalid Bitbucket app password."
    api_url = "https://api.bitbucket.org/2.0"

    def _request(self, token: str) -> Dict[str, Any]:
        username, sep, app_password = token.partition(":")
        if not sep or not username or not app_password:
            raise ApiError("Bitbucket token must be in the form 'username:app_password'.")
        return {
            "url": f"{self.api_url}/repositories/{username}",
            "params": {"role": "owner", "pagelen": str(PAGE_SIZE)},
            "headers": {"User-Agent": USER_AGENT},
            "auth": aiohttp.BasicAuth(username, app_password),
        }

    def _extract_nodes(self, data: Any) -> List[Dict[str, Any]]:
        if not isinstance(data, dict) or not isinstance(data.get("values"), list):
            raise ValueError("Expected a paginated 'values' object from Bitbucket.")
        return data["values"]


def default_sources(session: Optional[aiohttp.ClientSession] = None) -> Dict[Platform, RepositorySource]:
    return {
        Platform.GITHUB: GitHubClient(session),
        Platform.GITLAB: GitLabClient(session),
        Platform.BITBUCKET: BitbucketClient(session),
    }
