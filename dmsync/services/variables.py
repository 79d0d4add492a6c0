"""Variable Resolution

Exported-variable declarations and import resolution between dependent instances.

Declarations are "name" or "name = value" tokens, possibly grouped in
comma-separated lists. Names are qualified with the holder (component or
facet) name, e.g. "port = 4040" declared by "Redis" gives "Redis.port".
"""

from collections.abc import Iterable, Mapping

from ..core.entities import Application, Import, Instance


def parse_exports(declarations: Iterable[str], holder_name: str) -> dict[str, str | None]:
    """
    Parse exported-variable declarations

    "var" has no value (None), while "var=" has an empty-string value.
    When a name is declared twice, the last declaration wins.

    Args:
        declarations: Declaration tokens, e.g. ["var1, var2 = 587"]
        holder_name: Component or facet declaring the variables

    Returns:
        Qualified variable names mapped to their optional value
    """
    result: dict[str, str | None] = {}
    for declaration in declarations:
        for entry in declaration.split(","):
            entry = entry.strip()
            if not entry:
                continue

            name, sep, value = entry.partition("=")
            name = name.strip()
            if not name:
                continue

            result[f"{holder_name}.{name}"] = value.strip() if sep else None

    return result


def render_exports(exports: Mapping[str, str | None], holder_name: str) -> list[str]:
    """
    Render exported variables back into declaration tokens

    The holder prefix is stripped, so parsing the result with the same
    holder name gives back the same mapping.
    """
    prefix = holder_name + "."
    declarations = []
    for qualified_name, value in exports.items():
        name = qualified_name[len(prefix):] if qualified_name.startswith(prefix) else qualified_name
        declarations.append(name if value is None else f"{name}={value}")
    return declarations


def parse_variable_name(variable_name: str) -> tuple[str, str]:
    """
    Split a qualified variable name

    Returns:
        (component or facet name, simple name); the prefix is empty if unqualified
    """
    prefix, sep, name = variable_name.partition(".")
    if not sep:
        return "", variable_name
    return prefix, name


def find_exported_variables(instance: Instance) -> dict[str, str | None]:
    """Exports of the component and its facets, overridden by the instance's own values"""
    result = instance.component.all_exports()
    result.update(instance.exports)
    return result


def find_import_prefixes(instance: Instance) -> set[str]:
    """Component or facet names the instance imports variables from"""
    prefixes = set()
    for variable_name in instance.component.imports:
        prefix, _ = parse_variable_name(variable_name)
        if prefix:
            prefixes.add(prefix)
    return prefixes


def resolve_imports(instance: Instance, application: Application) -> dict[str, set[Import]]:
    """
    Compute the imports of an instance from the live model

    Each declared prefix maps to one Import per other instance whose component
    (or one of its facets) has that name. A prefix nobody satisfies maps to an
    empty set; undeclared prefixes never appear as keys.
    """
    result: dict[str, set[Import]] = {}
    candidates = [other for other in application.iter_instances() if other is not instance]

    for prefix in find_import_prefixes(instance):
        imports = set()
        for other in candidates:
            if not other.component.matches(prefix):
                continue

            exported = {
                name: value
                for name, value in find_exported_variables(other).items()
                if parse_variable_name(name)[0] == prefix
            }
            imports.add(Import(instance_path=other.path, exported_vars=exported))

        result[prefix] = imports

    return result
