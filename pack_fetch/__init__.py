"""pack-image-fetch - pull-policy aware container image fetcher."""

from importlib.metadata import PackageNotFoundError, version as _pkg_version

try:
    __version__ = _pkg_version("pack-image-fetch")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for editable installs / dev
