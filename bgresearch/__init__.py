"""
Background Research — company and vertical research summaries.

A small API service that turns a free-text research query into a structured
business-intelligence summary by way of an OpenAI-compatible chat-completion
provider.
"""

from pathlib import Path
import tomllib
from importlib.metadata import version, PackageNotFoundError

_DISTRIBUTION = "background-research"


def _checkout_version() -> str | None:
    """The ``[project] version`` of a source checkout, when running from one."""
    pyproject = Path(__file__).resolve().parent.parent / "pyproject.toml"
    try:
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError):
        return None
    ver = data.get("project", {}).get("version")
    return ver.strip() if isinstance(ver, str) and ver.strip() else None


def _resolve_version() -> str:
    # A checkout wins over whatever is installed in site-packages
    if ver := _checkout_version():
        return ver
    try:
        return version(_DISTRIBUTION)
    except PackageNotFoundError:
        return "0.0.0"


__version__ = _resolve_version()
