from typing import Any, Dict
from repohub.domain.models import Platform, Repository

class GitHubTranslator:
    """
    Anti-corruption layer that translates raw GitHub REST repository objects into Repository instances.
    """

    @staticmethod
    def to_domain(raw_node: Dict[str, Any]) -> Repository:
        """
        Transforms a raw GitHub repository object into a Repository.

        Args:
            raw_node (Dict[str, Any]): One element of the `/user/repos` response.

        Returns:
            Repository: The domain model instance representing the repository.
        """
        if raw_node.get('id') is None:
            raise ValueError("id is required to build Repository.")

        # Extract nested fields with safe defaults
        owner_data = raw_node.get('owner') or {}

        return Repository(
            id=str(raw_node['id']),
            name=raw_node.get('name', ''),
            url=raw_node.get('html_url', ''),
            description=raw_node.get('description'),
            owner=owner_data.get('login', ''),
            source=Platform.GITHUB,
        )


class GitLabTranslator:
    """Translates GitLab `/projects` entries into Repository instances."""

    @staticmethod
    def to_domain(raw_node: Dict[str, Any]) -> Repository:
        if raw_node.get('id') is None:
            raise ValueError("id is required to build Repository.")

        namespace_data = raw_node.get('namespace') or {}

        return Repository(
            id=str(raw_node['id']),
            name=raw_node.get('name', ''),
            url=raw_node.get('web_url', ''),
            description=raw_node.get('description'),
            owner=namespace_data.get('path', ''),
            source=Platform.GITLAB,
        )


class BitbucketTranslator:
    """Translates Bitbucket 2.0 repository objects into Repository instances."""

    @staticmethod
    def to_domain(raw_node: Dict[str, Any]) -> Repository:
        if not raw_node.get('uuid'):
            raise ValueError("uuid is required to build Repository.")

        owner_data = raw_node.get('owner') or {}
        html_link = (raw_node.get('links') or {}).get('html') or {}

        return Repository(
            id=raw_node['uuid'],
            name=raw_node.get('name', ''),
            url=html_link.get('href', ''),
            description=raw_node.get('description') or None,
            owner=owner_data.get('nickname') or owner_data.get('display_name', ''),
            source=Platform.BITBUCKET,
        )
