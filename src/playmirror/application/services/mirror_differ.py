"""Mirror differ - what has to change remotely so it mirrors local.

Hey future me - local is ALWAYS authoritative. There is no merge here, no "who
edited last". Remote-only tracks get removed, local-only tracks get added.
Both functions are pure: same input, same output, no I/O.
"""

from collections.abc import Iterable

from playmirror.domain.entities import MirrorDiff


def diff(remote_ids: Iterable[str], local_ids: Iterable[str]) -> MirrorDiff:
    """Compute add/remove sets.

    Applying the result and diffing again always yields an empty diff.
    """
    remote = frozenset(remote_ids)
    local = frozenset(local_ids)
    return MirrorDiff(to_add=local - remote, to_remove=remote - local)


def ordered_diff(
    remote_ids: Iterable[str], local_ids: Iterable[str]
) -> tuple[list[str], list[str]]:
    """Same as diff() but as lists: additions in local order, removals in remote order.

    Duplicates in the input are collapsed to their first occurrence.
    """
    remote_list = list(dict.fromkeys(remote_ids))
    local_list = list(dict.fromkeys(local_ids))
    remote = set(remote_list)
    local = set(local_list)
    to_add = [track_id for track_id in local_list if track_id not in remote]
    to_remove = [track_id for track_id in remote_list if track_id not in local]
    return to_add, to_remove
