"""Start and end marker nodes.

Markers delimit a path on the canvas. They never produce code; the resolver
uses the end marker to recognize terminal nodes.
"""

from ..contract import Handle, PluginDefinition, plugin


@plugin(
    PluginDefinition(
        slug="start",
        name="Start",
        node_type="start",
        description="Entry point of a workflow path",
        input_handles=(),
        output_handles=(Handle("next"),),
    )
)
def start(settings, children=None, context=None):
    return ""


@plugin(
    PluginDefinition(
        slug="end",
        name="End",
        node_type="end",
        description="Terminal node; one artifact is produced per end node",
        input_handles=(Handle("prev", required=True),),
        output_handles=(),
    )
)
def end(settings, children=None, context=None):
    return ""
