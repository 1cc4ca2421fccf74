#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from importlib.metadata import PackageNotFoundError, version  # pragma: no cover

from dateutil import tz
from omegaconf import OmegaConf

try:
    # Change here if project is renamed and does not equal the package name
    dist_name = "cowork-rooms"
    __version__ = version(dist_name)
except PackageNotFoundError:  # pragma: no cover
    __version__ = "unknown"
finally:
    del version, PackageNotFoundError


def _check_timezone(name: str) -> str:
    if tz.gettz(name) is None:
        raise ValueError(f"Unknown venue timezone: {name}")
    return name


OmegaConf.register_new_resolver("timezone", _check_timezone)
