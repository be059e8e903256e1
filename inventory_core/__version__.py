"""
Version information for the inventory aggregator.

The package version is read from pyproject.toml via importlib.metadata so
there is a single source of truth for version management.
"""

try:
    from importlib.metadata import version

    __version__ = version("inventory-aggregator")
except Exception:
    # Fallback for development (package not installed)
    import tomllib
    from pathlib import Path

    try:
        pyproject_path = Path(__file__).parent.parent / "pyproject.toml"
        with open(pyproject_path, "rb") as f:
            pyproject = tomllib.load(f)
            __version__ = pyproject["project"]["version"]
    except Exception:
        __version__ = "0.0.0-dev"

# Canonical payload schema version (separate from package version)
__payload_model_version__ = "1.0.0"
