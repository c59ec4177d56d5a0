"""
IPython/Jupyter key-completion support for tag browsing:

    client.tags["Py<TAB>

Importing this module registers the completer with the running IPython
shell, if there is one.
"""

import re
from IPython import get_ipython
from inkpost.entities.tags import TagsProxy


def completion_for_tags(self, event):
    """
    Return suggested tag names for expressions of the form:

        <object>.<attribute>["<prefix>

    Only triggers when <attribute> is a TagsProxy.
    """

    line = event.line

    # Match:   variable.tags["prefix
    match = re.search(r'(\w+)\.(\w+)\["([^"]*)$', line)
    if not match:
        return []

    var_name, attr_name, prefix = match.groups()

    shell = get_ipython()
    if shell is None:
        return []

    base_obj = shell.user_ns.get(var_name)
    if base_obj is None:
        return []

    tags = getattr(base_obj, attr_name, None)
    if not isinstance(tags, TagsProxy):
        return []

    try:
        names = tags.names()
    except Exception:
        return []

    # Case-insensitive prefix completion
    lowered = prefix.lower()
    return [n for n in names if n.lower().startswith(lowered)]


# Register the completer with IPython
ip = get_ipython()
if ip:
    ip.set_hook("complete_command", completion_for_tags)
