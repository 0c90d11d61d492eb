from typing import Dict, List, Optional, Set

from repohub.domain.models import RepoGroup, RepoId, Repository, RepositoryView


def _first_group_of(repo_id: RepoId, groups: List[RepoGroup]) -> Optional[RepoGroup]:
    return next((g for g in groups if repo_id in g.repo_ids), None)


def project(repositories: List[Repository], groups: List[RepoGroup], query: str = "") -> RepositoryView:
    """
    Partitions repositories into groups and an ungrouped remainder.

    With an empty query every group appears (possibly empty), dangling member
    ids are dropped and every repository outside all groups is ungrouped.

    With a query, a group appears when its name matches or at least one member
    matches; a name match brings in all resolvable members. A repository that
    matches on its own is listed as ungrouped only when it has no group or its
    group did not appear. No repository id is emitted twice.
    """
    query = query.strip().lower()

    by_id: Dict[RepoId, Repository] = {}
    for repo in repositories:
        by_id.setdefault(repo.id, repo)

    view = RepositoryView()

    if not query:
        grouped_ids: Set[RepoId] = set()
        for group in groups:
            members = view.grouped.setdefault(group.name, [])
            for repo_id in group.repo_ids:
                grouped_ids.add(repo_id)
                repo = by_id.get(repo_id)
                if repo is not None:
                    members.append(repo)
        view.ungrouped = [repo for repo in repositories if repo.id not in grouped_ids]
        return view

    emitted: Set[RepoId] = set()
    for group in groups:
        name_match = query in group.name.lower()
        members = []
        for repo_id in group.repo_ids:
            repo = by_id.get(repo_id)
            if repo is None or repo.id in emitted:
                continue
            if name_match or repo.matches(query):
                members.append(repo)
                emitted.add(repo.id)
        if members:
            view.grouped[group.name] = members

    for repo in repositories:
        if repo.id in emitted or not repo.matches(query):
            continue
        original_group = _first_group_of(repo.id, groups)
        if original_group is None or original_group.name not in view.grouped:
            view.ungrouped.append(repo)
            emitted.add(repo.id)

    return view
