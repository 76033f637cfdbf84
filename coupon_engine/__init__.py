from importlib.metadata import (
    version,
    PackageNotFoundError,
)

APP_TITLE = "Coupon Engine"

try:
    __version__ = version("coupon-engine")
except PackageNotFoundError:
    raise ValueError("coupon-engine package not found")
