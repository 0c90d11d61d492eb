"""
Versioned wire format of the three persisted payloads.

Tokens and groups are stored as ``{"version": 1, "items": [...]}``; the cache
snapshot as ``{"version": 1, "timestamp": <epoch ms>, "data": [...]}``. Bare
JSON arrays (and snapshots without a version) are the legacy version 0 shape
and are still accepted on load.
"""

import json
import logging
from typing import Any, List

from pydantic import ValidationError

from repohub.domain.exceptions import SchemaError
from repohub.domain.models import CacheSnapshot, PlatformToken, RepoGroup, Repository

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
LEGACY_VERSION = 0


def _parse(raw: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise SchemaError(f"Payload is not valid JSON: {e}") from e


def _items(raw: str, kind: str) -> List[Any]:
    payload = _parse(raw)
    if isinstance(payload, list):
        return payload

    if not isinstance(payload, dict):
        raise SchemaError(f"Stored {kind} must be an object or an array.")
    version = payload.get("version")
    if version != SCHEMA_VERSION:
        raise SchemaError(f"Unsupported {kind} schema version: {version!r}.")
    items = payload.get("items")
    if not isinstance(items, list):
        raise SchemaError(f"Stored {kind} has no 'items' array.")
    return items


def _envelope(items: List[Any]) -> str:
    return json.dumps({"version": SCHEMA_VERSION, "items": items})


def encode_tokens(tokens: List[PlatformToken]) -> str:
    return _envelope([token.model_dump(mode="json") for token in tokens])


def decode_tokens(raw: str) -> List[PlatformToken]:
    """
    Decodes a stored token list. Entries missing id, platform or token are
    skipped individually; a payload that is not a token list raises SchemaError.
    """
    tokens = []
    for entry in _items(raw, "tokens"):
        if not isinstance(entry, dict) or not (entry.get("id") and entry.get("platform") and entry.get("token")):
            logger.warning(f"Skipping incomplete stored token entry: {entry!r:.80}")
            continue
        try:
            tokens.append(PlatformToken.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping invalid stored token {entry.get('id')}: {e.error_count()} error(s).")
    return tokens


def encode_groups(groups: List[RepoGroup]) -> str:
    return _envelope([group.model_dump(mode="json") for group in groups])


def decode_groups(raw: str) -> List[RepoGroup]:
    groups = []
    for entry in _items(raw, "groups"):
        if isinstance(entry, dict) and "repo_ids" not in entry and "repoIds" in entry:
            # Legacy entries used camelCase membership.
            entry = {**entry, "repo_ids": entry["repoIds"]}
        try:
            groups.append(RepoGroup.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping invalid stored group: {e.error_count()} error(s).")
    return groups


def encode_snapshot(snapshot: CacheSnapshot) -> str:
    return json.dumps(snapshot.model_dump(mode="json"))


def decode_snapshot(raw: str) -> CacheSnapshot:
    payload = _parse(raw)
    if not isinstance(payload, dict):
        raise SchemaError("Cache snapshot must be an object.")
    version = payload.get("version", LEGACY_VERSION)
    if version not in (LEGACY_VERSION, SCHEMA_VERSION):
        raise SchemaError(f"Unsupported cache schema version: {version!r}.")
    if not isinstance(payload.get("data"), list):
        raise SchemaError("Cache snapshot has no 'data' array.")
    try:
        return CacheSnapshot.model_validate({**payload, "version": SCHEMA_VERSION})
    except ValidationError as e:
        raise SchemaError(f"Cache snapshot is malformed: {e.error_count()} error(s).") from e


def make_snapshot(repositories: List[Repository], timestamp_ms: float) -> CacheSnapshot:
    return CacheSnapshot(version=SCHEMA_VERSION, timestamp=timestamp_ms, data=list(repositories))
