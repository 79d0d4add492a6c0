"""Component Domain Entity

Static description of what an instance runs. Supplied by the model loader and
read-only for the synchronization core.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Facet:
    """
    Facet Domain Entity

    A named group of exported variables that several components can share.
    Export names are qualified with the facet name (e.g. "database.port").
    """

    name: str
    exports: dict[str, str | None] = field(default_factory=dict)

    def __post_init__(self):
        """Validate invariants"""
        if not self.name:
            raise ValueError("facet name cannot be empty")


@dataclass(frozen=True)
class Component:
    """
    Component Domain Entity

    Attributes:
        name: Component name, also the prefix of its own exported variables
        exports: Qualified exported variables with their default values
        imports: Declared imported variables (e.g. "MySQL.port", "database.*")
        facets: Facets this component inherits exports from
    """

    name: str
    exports: dict[str, str | None] = field(default_factory=dict)
    imports: tuple[str, ...] = ()
    facets: tuple[Facet, ...] = ()

    def __post_init__(self):
        """Validate invariants"""
        if not self.name:
            raise ValueError("component name cannot be empty")

    @property
    def facet_names(self) -> set[str]:
        """Names of the facets this component inherits"""
        return {facet.name for facet in self.facets}

    def matches(self, component_or_facet_name: str) -> bool:
        """Check if this component is, or has the facet, with the given name"""
        return component_or_facet_name == self.name or component_or_facet_name in self.facet_names

    def all_exports(self) -> dict[str, str | None]:
        """Exports declared by the facets, then by the component itself"""
        result: dict[str, str | None] = {}
        for facet in self.facets:
            result.update(facet.exports)
        result.update(self.exports)
        return result
