"""Application Domain Entity"""

from collections.abc import Iterator
from dataclasses import dataclass, field

from .instance import Instance


@dataclass(eq=False)
class Application:
    """
    Application Domain Entity

    Owns a forest of root instances. Each application has its own routing
    namespace and its own message processor.
    """

    name: str
    description: str | None = None
    root_instances: list[Instance] = field(default_factory=list)

    def __post_init__(self):
        """Validate invariants"""
        if not self.name:
            raise ValueError("application name cannot be empty")

    def find_root(self, name: str) -> Instance | None:
        """Find a root instance by name"""
        for instance in self.root_instances:
            if instance.name == name:
                return instance
        return None

    def add_root(self, instance: Instance) -> Instance:
        """
        Add a root instance

        Raises:
            ValueError: If the instance has a parent or the name is taken
        """
        if instance.parent is not None:
            raise ValueError(f"{instance.path} is not a root instance")
        if self.find_root(instance.name) is not None:
            raise ValueError(f"{self.name} already has a root instance named {instance.name}")
        self.root_instances.append(instance)
        return instance

    def iter_instances(self) -> Iterator[Instance]:
        """Depth-first iteration over every instance of the application"""
        stack = list(reversed(self.root_instances))
        while stack:
            instance = stack.pop()
            yield instance
            stack.extend(reversed(instance.children))
