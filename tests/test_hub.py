import json
import unittest

from repohub.application.hub import RepoHub
from repohub.domain.exceptions import DuplicateGroupError, EmptyTokenError
from repohub.domain.models import Platform, PlatformToken, Repository
from repohub.infrastructure.cache_store import CACHE_EXPIRY_SECONDS
from repohub.infrastructure.storage import CACHE_KEY, GROUPS_KEY, TOKENS_KEY, InMemoryKeyValueStore

NOW = 1_700_000_000.0


class _FakeSource:
    def __init__(self, repos=None) -> None:
        self.repos = repos or []
        self.calls = 0

    async def get_repositories(self, token):
        self.calls += 1
        return list(self.repos)


class _Clock:
    def __init__(self) -> None:
        self.now = NOW

    def __call__(self) -> float:
        return self.now


def _repo(repo_id, name) -> Repository:
    return Repository(id=repo_id, name=name, url="#", owner="alice", source=Platform.GITHUB)


def _snapshot(timestamp_s: float, names) -> str:
    return json.dumps({
        "version": 1,
        "timestamp": timestamp_s * 1000,
        "data": [{"id": n, "name": n, "url": "#", "owner": "alice", "source": "GitHub"} for n in names],
    })


class TestRepoHub(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.storage = InMemoryKeyValueStore()
        self.clock = _Clock()
        self.github = _FakeSource([_repo("1", "repoA")])

    def _hub(self) -> RepoHub:
        hub = RepoHub(self.storage, sources={Platform.GITHUB: self.github}, clock=self.clock, refresh_interval=3600)
        self.addCleanup(hub.close)
        return hub

    def _store_token(self) -> None:
        self.storage.set(TOKENS_KEY, json.dumps({"version": 1, "items": [
            {"id": "t1", "platform": "GitHub", "token": "abc"},
        ]}))

    async def test_construction_loads_tokens_and_groups(self) -> None:
        self._store_token()
        self.storage.set(GROUPS_KEY, json.dumps([{"id": "g1", "name": "Work", "repoIds": ["1"]}]))

        hub = self._hub()

        self.assertTrue(hub.is_authenticated)
        self.assertEqual([g.name for g in hub.groups], ["Work"])
        self.assertEqual(hub.get_repo_group_id("1"), "g1")

    async def test_first_token_starts_scheduler_and_last_stops_it(self) -> None:
        hub = self._hub()
        self.assertFalse(hub.is_authenticated)

        hub.save_token(PlatformToken(id="t1", platform=Platform.GITHUB, token="abc"))
        self.assertTrue(hub.scheduler.is_running)

        await hub.refresh(force_refresh=True)
        self.assertIsNotNone(self.storage.get(CACHE_KEY))

        hub.delete_token("t1")
        self.assertFalse(hub.scheduler.is_running)
        self.assertIsNone(self.storage.get(CACHE_KEY))
        self.assertFalse(hub.is_authenticated)

    async def test_save_token_validation_is_raised(self) -> None:
        hub = self._hub()

        with self.assertRaises(EmptyTokenError):
            hub.save_token(PlatformToken(id="t1", platform=Platform.GITHUB, token=""))

        self.assertFalse(hub.scheduler.is_running)

    async def test_initialize_without_tokens_does_nothing(self) -> None:
        hub = self._hub()

        await hub.initialize_and_refresh()

        self.assertEqual(self.github.calls, 0)
        self.assertEqual(hub.repositories, ())

    async def test_initialize_with_fresh_cache_skips_network(self) -> None:
        self._store_token()
        self.storage.set(CACHE_KEY, _snapshot(NOW - 60, ["cached"]))
        hub = self._hub()

        await hub.initialize_and_refresh()

        self.assertEqual(self.github.calls, 0)
        self.assertEqual([r.name for r in hub.repositories], ["cached"])
        self.assertTrue(hub.scheduler.is_running)

    async def test_initialize_with_stale_cache_refreshes_in_background(self) -> None:
        self._store_token()
        self.storage.set(CACHE_KEY, _snapshot(NOW - CACHE_EXPIRY_SECONDS - 1, ["cached"]))
        hub = self._hub()

        await hub.initialize_and_refresh()

        self.assertEqual(self.github.calls, 1)
        self.assertEqual([r.name for r in hub.repositories], ["repoA"])
        self.assertFalse(hub.is_loading)

    async def test_initialize_with_malformed_cache_refreshes(self) -> None:
        self._store_token()
        self.storage.set(CACHE_KEY, "{oops")
        hub = self._hub()

        await hub.initialize_and_refresh()

        self.assertEqual(self.github.calls, 1)
        self.assertIsNone(hub.error)

    async def test_groups_and_search_projection(self) -> None:
        self._store_token()
        self.github.repos = [_repo(1, "repo1"), _repo(2, "repo2"), _repo(3, "repo3")]
        hub = self._hub()
        await hub.refresh(force_refresh=True)

        g1 = hub.add_group("G1")
        g2 = hub.add_group("G2")
        hub.add_repo_to_group(g1.id, 1)
        hub.add_repo_to_group(g2.id, 2)

        view = hub.repositories_by_group
        self.assertEqual({k: [r.id for r in v] for k, v in view.grouped.items()}, {"G1": [1], "G2": [2]})
        self.assertEqual([r.id for r in view.ungrouped], [3])

        hub.set_search_query("  G1 ")
        self.assertEqual(hub.search_query, "G1")
        view = hub.repositories_by_group
        self.assertEqual({k: [r.id for r in v] for k, v in view.grouped.items()}, {"G1": [1]})
        self.assertEqual(view.ungrouped, [])

        with self.assertRaises(DuplicateGroupError):
            hub.add_group("g1")

        hub.remove_repo_from_group(g1.id, 1)
        hub.delete_group(g2.id)
        self.assertIsNone(hub.get_repo_group_id(1))
        self.assertIsNone(hub.get_repo_group_id(2))

    async def test_read_model_cannot_mutate_state(self) -> None:
        hub = self._hub()
        group = hub.add_group("Work")

        hub.groups[0].repo_ids.append(42)
        group.repo_ids.append(43)

        self.assertEqual(hub.groups[0].repo_ids, [])
