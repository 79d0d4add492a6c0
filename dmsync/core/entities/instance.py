"""Instance Domain Entity

A node in an application's instance tree, plus the Import value type that
dependents receive when another instance announces its exports.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from .component import Component

# Key of the machine IP address in Instance.data
IP_ADDRESS = "ip.address"


class InstanceStatus(str, Enum):
    """Instance life cycle status"""

    NOT_DEPLOYED = "NOT_DEPLOYED"
    DEPLOYING = "DEPLOYING"
    DEPLOYED_STOPPED = "DEPLOYED_STOPPED"
    DEPLOYED_STARTING = "DEPLOYED_STARTING"
    DEPLOYED_STARTED = "DEPLOYED_STARTED"
    STOPPING = "STOPPING"
    UNDEPLOYING = "UNDEPLOYING"
    PROBLEM = "PROBLEM"


@dataclass(frozen=True)
class Import:
    """
    Snapshot of another instance's exports, as seen by a dependent.

    Imports are values: they are copied into the consumer's model and never
    track later changes of the source instance.
    """

    instance_path: str
    exported_vars: Mapping[str, str | None] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "exported_vars", MappingProxyType(dict(self.exported_vars)))

    def __hash__(self) -> int:
        return hash((self.instance_path, frozenset(self.exported_vars.items())))


@dataclass(eq=False)
class Instance:
    """
    Instance Domain Entity

    A parent exclusively owns its children. The parent link is a non-owning
    back-reference kept for traversal only; it is maintained by add_child()
    and remove_child().
    """

    name: str
    component: Component
    status: InstanceStatus = InstanceStatus.NOT_DEPLOYED
    exports: dict[str, str | None] = field(default_factory=dict)
    data: dict[str, str] = field(default_factory=dict)
    imports: dict[str, set[Import]] = field(default_factory=dict)
    children: list["Instance"] = field(default_factory=list, repr=False)
    parent: "Instance | None" = field(default=None, repr=False)

    def __post_init__(self):
        """Validate invariants"""
        if not self.name:
            raise ValueError("instance name cannot be empty")
        if "/" in self.name:
            raise ValueError(f"instance name cannot contain '/': {self.name}")

    @property
    def path(self) -> str:
        """Path from the root, e.g. /vm/tomcat/webapp"""
        names = [instance.name for instance in self.ancestors_and_self()]
        return "/" + "/".join(reversed(names))

    @property
    def root(self) -> "Instance":
        """Root ancestor (the instance itself for a root)"""
        current = self
        while current.parent is not None:
            current = current.parent
        return current

    def is_root(self) -> bool:
        """Check if this instance has no parent"""
        return self.parent is None

    def ancestors_and_self(self) -> Iterator["Instance"]:
        """Iterate from this instance up to the root"""
        current: Instance | None = self
        while current is not None:
            yield current
            current = current.parent

    def find_child(self, name: str) -> "Instance | None":
        """Find a direct child by name"""
        for child in self.children:
            if child.name == name:
                return child
        return None

    def add_child(self, child: "Instance") -> "Instance":
        """
        Attach a child instance

        Raises:
            ValueError: If a sibling already has this name
        """
        if self.find_child(child.name) is not None:
            raise ValueError(f"{self.path} already has a child named {child.name}")
        child.parent = self
        self.children.append(child)
        return child

    def remove_child(self, child: "Instance") -> bool:
        """Detach a child instance and its whole subtree"""
        for index, candidate in enumerate(self.children):
            if candidate is child:
                del self.children[index]
                child.parent = None
                return True
        return False
