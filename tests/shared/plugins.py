"""Plugin builders shared by tests."""

from typing import Any, Callable, Union

from tensorweave.plugins import ImportSpec, Plugin, PluginDefinition, SettingsField


def make_plugin(
    slug: str,
    code: Union[str, Callable[..., str]] = "",
    structural: bool = False,
    min_children: int = 0,
    imports: tuple[ImportSpec, ...] = (),
    settings_fields: tuple[SettingsField, ...] = (),
    version: str = "1.0.0",
) -> Plugin:
    """Plugin whose generate returns ``code`` (or calls it with the generate arguments)."""
    definition = PluginDefinition(
        slug=slug,
        name=slug,
        version=version,
        settings_fields=settings_fields,
        imports=imports,
        structural=structural,
        min_children=min_children,
    )

    def generate(settings: dict[str, Any], children=None, context=None) -> str:
        if callable(code):
            return code(settings, children, context)
        return code

    return Plugin(definition=definition, generate=generate)
