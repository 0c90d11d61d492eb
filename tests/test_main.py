import os
import tempfile
import unittest
from unittest.mock import patch

from repohub.application.hub import RepoHub
from repohub.config import Settings
from repohub.domain.models import Platform, PlatformToken, Repository, RepositoryView
from repohub.infrastructure.storage import InMemoryKeyValueStore
from repohub.main import parse_args, register_env_tokens, render, run


class _FakeSource:
    async def get_repositories(self, token):
        return [Repository(id="1", name="repoA", url="https://x/repoA", owner="alice", source=Platform.GITHUB)]


class TestCli(unittest.IsolatedAsyncioTestCase):
    def test_parse_args(self) -> None:
        args = parse_args(["--search", "foo", "--assign", "Work", "42"])

        self.assertEqual(args.search, "foo")
        self.assertEqual(args.assign, ["Work", "42"])
        self.assertFalse(args.refresh)

    async def test_env_tokens_register_once(self) -> None:
        hub = RepoHub(InMemoryKeyValueStore(), sources={})
        self.addCleanup(hub.close)
        settings = Settings(platform_tokens={Platform.GITHUB: "abc"})

        register_env_tokens(hub, settings)
        register_env_tokens(hub, settings)

        self.assertEqual([t.id for t in hub.tokens], ["env-github"])

    async def test_env_token_already_saved_by_user(self) -> None:
        hub = RepoHub(InMemoryKeyValueStore(), sources={})
        self.addCleanup(hub.close)
        hub.save_token(PlatformToken(id="mine", platform=Platform.GITHUB, token="abc"))

        register_env_tokens(hub, Settings(platform_tokens={Platform.GITHUB: "abc"}))

        self.assertEqual([t.id for t in hub.tokens], ["mine"])

    def test_render(self) -> None:
        repo = Repository(id="1", name="repoA", url="#", owner="alice", source=Platform.GITHUB)
        text = render(RepositoryView(grouped={"Work": [repo]}, ungrouped=[repo]))

        self.assertEqual(text.splitlines()[0], "[Work]")
        self.assertIn("alice/repoA", text)
        self.assertIn("[ungrouped]", text)

    async def test_run_without_tokens_fails(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            settings = Settings(database_url=f"sqlite:///{os.path.join(tmp, 'hub.db')}")

            exit_code = await run(parse_args([]), settings)

        self.assertEqual(exit_code, 1)

    async def test_run_lists_and_groups(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            settings = Settings(
                database_url=f"sqlite:///{os.path.join(tmp, 'hub.db')}",
                platform_tokens={Platform.GITHUB: "abc"},
            )
            with patch("repohub.application.hub.default_sources", return_value={Platform.GITHUB: _FakeSource()}), \
                    patch("builtins.print") as mock_print:
                exit_code = await run(parse_args(["--add-group", "Work", "--assign", "work", "1"]), settings)

        self.assertEqual(exit_code, 0)
        output = mock_print.call_args[0][0]
        self.assertTrue(output.startswith("[Work]"))
        self.assertIn("alice/repoA", output)
