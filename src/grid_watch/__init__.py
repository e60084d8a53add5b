"""Grid Watch: mains power availability from battery station telemetry."""

try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("grid-watch")
except Exception:
    __version__ = "dev"
