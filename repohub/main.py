import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from repohub.application.hub import RepoHub
from repohub.config import Settings, load_settings
from repohub.domain.exceptions import ConfigurationError, DuplicateTokenError, PersistenceError
from repohub.domain.models import PlatformToken, RepositoryView
from repohub.infrastructure.storage import SqlKeyValueStore

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="repohub", description="List your repositories across platforms.")
    parser.add_argument("--search", default="", help="Filter repositories and groups by this text.")
    parser.add_argument("--refresh", action="store_true", help="Ignore the cache and fetch from every platform.")
    parser.add_argument("--add-group", metavar="NAME", help="Create a group before listing.")
    parser.add_argument(
        "--assign", nargs=2, metavar=("GROUP_NAME", "REPO_ID"), help="Move a repository into a group."
    )
    return parser.parse_args(argv)


def register_env_tokens(hub: RepoHub, settings: Settings) -> None:
    for platform, secret in settings.platform_tokens.items():
        token = PlatformToken(id=f"env-{platform.value.lower()}", platform=platform, token=secret, name="environment")
        try:
            hub.save_token(token)
        except DuplicateTokenError:
            logger.info(f"{platform.value} token from the environment is already registered.")


def render(view: RepositoryView) -> str:
    lines = []
    for group_name, repos in view.grouped.items():
        lines.append(f"[{group_name}]")
        lines.extend(f"  {repo.source.value:<9} {repo.owner}/{repo.name}  {repo.url}" for repo in repos)
    if view.ungrouped:
        lines.append("[ungrouped]")
        lines.extend(f"  {repo.source.value:<9} {repo.owner}/{repo.name}  {repo.url}" for repo in view.ungrouped)
    return "\n".join(lines)


async def run(args: argparse.Namespace, settings: Settings) -> int:
    # Initialize the key/value store and the hub
    storage = SqlKeyValueStore(db_url=settings.database_url)
    hub = RepoHub(
        storage,
        refresh_interval=settings.refresh_interval,
        adapter_timeout=settings.adapter_timeout,
    )

    try:
        register_env_tokens(hub, settings)
        if not hub.is_authenticated:
            logger.error("No platform tokens configured. Set GITHUB_TOKEN, GITLAB_TOKEN or BITBUCKET_TOKEN.")
            return 1

        if args.refresh:
            await hub.refresh(force_refresh=True)
        else:
            await hub.initialize_and_refresh()

        if args.add_group:
            hub.add_group(args.add_group)
        if args.assign:
            group_name, repo_id = args.assign
            group = next((g for g in hub.groups if g.name.lower() == group_name.lower()), None)
            if group is None:
                raise ConfigurationError(f"Group '{group_name}' does not exist.")
            hub.add_repo_to_group(group.id, repo_id)

        hub.set_search_query(args.search)
        if hub.error:
            logger.warning(hub.error)
        print(render(hub.repositories_by_group))
        return 0
    finally:
        hub.close()


def main(argv: Optional[List[str]] = None) -> None:
    settings = load_settings()

    # Configure logging
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    args = parse_args(argv)
    try:
        exit_code = asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user. Exiting gracefully.")
        exit_code = 0
    except (ConfigurationError, PersistenceError) as e:
        logger.error(str(e))
        exit_code = 1
    except Exception as e:
        logger.exception(f"An unexpected error occurred: {e}")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
