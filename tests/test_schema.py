import json
import unittest

from repohub.domain.exceptions import SchemaError
from repohub.domain.models import Platform, PlatformToken, RepoGroup, Repository
from repohub.domain.schema import (
    decode_groups,
    decode_snapshot,
    decode_tokens,
    encode_groups,
    encode_snapshot,
    encode_tokens,
    make_snapshot,
)


class TestTokenSchema(unittest.TestCase):
    def test_encoded_tokens_are_versioned(self) -> None:
        raw = encode_tokens([PlatformToken(id="t1", platform=Platform.GITHUB, token="abc")])

        payload = json.loads(raw)
        self.assertEqual(payload["version"], 1)
        self.assertEqual(payload["items"][0]["platform"], "GitHub")

    def test_legacy_array_is_accepted_and_incomplete_entries_skipped(self) -> None:
        raw = json.dumps([
            {"id": "t1", "platform": "GitHub", "token": "abc", "name": "work"},
            {"id": "t2", "platform": "GitLab"},
            {"platform": "GitLab", "token": "x"},
            {"id": "t3", "platform": "Gitea", "token": "x"},
            "junk",
        ])

        tokens = decode_tokens(raw)

        self.assertEqual([t.id for t in tokens], ["t1"])
        self.assertEqual(tokens[0].name, "work")

    def test_unknown_version_is_rejected(self) -> None:
        with self.assertRaises(SchemaError):
            decode_tokens(json.dumps({"version": 99, "items": []}))

    def test_invalid_json_is_rejected(self) -> None:
        with self.assertRaises(SchemaError):
            decode_tokens("{not json")


class TestGroupSchema(unittest.TestCase):
    def test_legacy_camel_case_membership(self) -> None:
        raw = json.dumps([{"id": "g1", "name": "Work", "repoIds": [1, "gl1"]}])

        groups = decode_groups(raw)

        self.assertEqual(groups[0].repo_ids, [1, "gl1"])

    def test_repo_id_types_survive_encoding(self) -> None:
        raw = encode_groups([RepoGroup(id="g1", name="Work", repo_ids=[1, "2"])])

        self.assertEqual(decode_groups(raw)[0].repo_ids, [1, "2"])


class TestSnapshotSchema(unittest.TestCase):
    def _repo(self) -> Repository:
        return Repository(id="1", name="repoA", url="#", owner="alice", source=Platform.GITHUB)

    def test_snapshot_keeps_timestamp_and_data(self) -> None:
        raw = encode_snapshot(make_snapshot([self._repo()], 1_700_000_000_000))

        snapshot = decode_snapshot(raw)

        self.assertEqual(snapshot.timestamp, 1_700_000_000_000)
        self.assertEqual(snapshot.data[0].name, "repoA")

    def test_legacy_snapshot_without_version(self) -> None:
        raw = json.dumps({"timestamp": 5, "data": [
            {"id": "gl1", "name": "GitLab Repo 1", "url": "#", "owner": "u", "source": "GitLab",
             "sourcePlatform": "GitLab", "tokenId": "t2"},
        ]})

        self.assertEqual(decode_snapshot(raw).data[0].source, Platform.GITLAB)

    def test_structurally_invalid_snapshots(self) -> None:
        for raw in (
            json.dumps([]),
            json.dumps({"timestamp": "yesterday", "data": []}),
            json.dumps({"timestamp": 5, "data": {}}),
            json.dumps({"data": []}),
            json.dumps({"version": 2, "timestamp": 5, "data": []}),
            "garbage",
        ):
            with self.subTest(raw=raw):
                with self.assertRaises(SchemaError):
                    decode_snapshot(raw)
