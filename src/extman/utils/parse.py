"""
Repository Spec Parsing

Parses command-line repository specs of the form ``[@scope/]name[@version]``.
"""

from typing import Optional, Tuple


def parse_spec(spec: str) -> Tuple[str, Optional[str]]:
    """
    Split a repository spec into its name and optional version.

    A leading ``@`` belongs to the name (scoped names), any later ``@``
    starts the version.

    Example:
        parse_spec("owner/demo@v1.0")  # ("owner/demo", "v1.0")
        parse_spec("@scope/demo@main")  # ("@scope/demo", "main")
    """
    parts = spec.split("@")
    if parts[0] == "" and len(parts) > 1:
        name = "@" + parts[1]
        version = parts[2] if len(parts) > 2 else None
    else:
        name = parts[0]
        version = parts[1] if len(parts) > 1 else None
    return name, version or None
