from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("epusst-viz")
except PackageNotFoundError:
    __version__ = "0+unknown"
