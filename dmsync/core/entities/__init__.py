"""Domain Entities

Pure business objects without framework dependencies.
These represent the deployed-application model held by the DM.
"""

from .application import Application
from .component import Component, Facet
from .instance import IP_ADDRESS, Import, Instance, InstanceStatus

__all__ = [
    "Application",
    "Component",
    "Facet",
    "IP_ADDRESS",
    "Import",
    "Instance",
    "InstanceStatus",
]
