"""Instance Model Helpers

Operations on an application's instance tree. Lookups never raise: an absent
result means "unknown instance" and callers decide how to report it.
"""

from collections.abc import Iterator, Mapping, Set

import structlog  # type: ignore[import-untyped]

from .entities import Application, Import, Instance, InstanceStatus

logger = structlog.get_logger()


def find_instance_by_path(application: Application, path: str | None) -> Instance | None:
    """
    Find an instance by path

    Walks from the root down, one path segment at a time.

    Args:
        application: Application to search
        path: Instance path, e.g. "/vm/tomcat"

    Returns:
        The instance, or None if any segment is missing or the path is malformed
    """
    if not path or not path.startswith("/"):
        return None

    segments = path[1:].split("/")
    current = application.find_root(segments[0])
    for segment in segments[1:]:
        if current is None:
            break
        current = current.find_child(segment)

    return current


def find_root_instance(application: Application, root_instance_name: str) -> Instance | None:
    """Find a root instance from its name"""
    return find_instance_by_path(application, "/" + root_instance_name)


def list_children_recursively(instance: Instance) -> Iterator[Instance]:
    """Depth-first iteration over an instance and all its descendants"""
    yield instance
    for child in instance.children:
        yield from list_children_recursively(child)


def all_instances(application: Application) -> list[Instance]:
    """All the instances of an application, depth-first"""
    return list(application.iter_instances())


def remove_subtree(instance: Instance) -> bool:
    """
    Detach an instance (and its children) from its parent

    Root instances are only removed through machine termination, so removing
    one here is refused.

    Returns:
        True if the instance was detached
    """
    parent = instance.parent
    if parent is None:
        logger.warning("root_instance_removal_refused", instance_path=instance.path)
        return False

    path = instance.path
    removed = parent.remove_child(instance)
    if removed:
        logger.debug("instance_subtree_removed", instance_path=path)
    return removed


def set_status(instance: Instance, status: InstanceStatus) -> InstanceStatus:
    """
    Overwrite the status of an instance

    Returns:
        The previous status
    """
    old_status = instance.status
    instance.status = status
    logger.debug(
        "instance_status_set",
        instance_path=instance.path,
        old_status=old_status.value,
        new_status=status.value,
    )
    return old_status


def merge_imports(instance: Instance, new_imports: Mapping[str, Set[Import]]) -> None:
    """
    Replace the imports of an instance

    Last write wins: prefixes missing from new_imports are dropped, and
    an empty set is kept as "nothing resolved yet" for that prefix.
    """
    instance.imports = {prefix: set(imports) for prefix, imports in new_imports.items()}
