"""
Routing Keys

Bus addresses derived only from model data, so they are stable across DM
restarts. Every key is namespaced by the application name:

    {prefix}.{application}.dm                  agents -> DM notifications
    {prefix}.{application}.agent.{root}        DM -> one agent
    {prefix}.{application}.exports.{name}      agent <-> agent exports/imports

Name segments are percent-escaped ('.', '%' and whitespace) so that distinct
(application, name) pairs never produce the same key.
"""

from urllib.parse import quote

from ..core.entities import Instance

DEFAULT_PREFIX = "dmsync"


def escape_segment(name: str) -> str:
    """Escape a name so it can be used as one routing key segment"""
    return quote(name, safe="-_~").replace(".", "%2E")


def routing_key_to_dm(application_name: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Address the DM listens on for an application"""
    return f"{prefix}.{escape_segment(application_name)}.dm"


def routing_key_for_agent(
    application_name: str,
    instance: Instance,
    prefix: str = DEFAULT_PREFIX,
) -> str:
    """
    Address of the agent that owns an instance

    Args:
        application_name: Owning application
        instance: Any instance; the key is derived from its root ancestor
        prefix: Key namespace

    Returns:
        Routing key of the agent
    """
    root_name = instance.root.name
    return f"{prefix}.{escape_segment(application_name)}.agent.{escape_segment(root_name)}"


def routing_key_for_exports(
    application_name: str,
    component_or_facet_name: str,
    prefix: str = DEFAULT_PREFIX,
) -> str:
    """Topic on which the exports of a component or facet are requested and announced"""
    return (
        f"{prefix}.{escape_segment(application_name)}"
        f".exports.{escape_segment(component_or_facet_name)}"
    )
