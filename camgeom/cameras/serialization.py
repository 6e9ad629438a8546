"""
Versioned persistence of pinhole projections.

Fields are written in the fixed order fu, fv, cu, cv, ru, rv, distortion
together with a ``version`` tag. Loading a record written by a newer
version fails immediately instead of guessing at its layout.

File format (YAML):

    version: 0
    fu: 400.0
    fv: 400.0
    cu: 320.0
    cv: 240.0
    ru: 640
    rv: 480
    distortion:
      type: radtan
      parameters: [-0.28, 0.07, 0.00016, 1.8e-05]
"""

from pathlib import Path
from typing import Any, Dict, Mapping, Union

from .pinhole import PinholeProjection
from ..utils.config_loader import ConfigLoader, get_section

SERIALIZATION_VERSION = 0

FIELD_ORDER = ("fu", "fv", "cu", "cv", "ru", "rv", "distortion")


class UnsupportedVersionError(RuntimeError):
    """Raised when a record was written by a newer serialization version."""


def to_dict(projection: PinholeProjection) -> Dict[str, Any]:
    """
    Serialize a projection to an ordered mapping.

    Args:
        projection: Projection to serialize.

    Returns:
        Dict with 'version' followed by the fields in FIELD_ORDER.
    """
    config = projection.to_config()
    record: Dict[str, Any] = {"version": SERIALIZATION_VERSION}
    for field in FIELD_ORDER:
        record[field] = config[field]
    return record


def from_dict(record: Mapping[str, Any]) -> PinholeProjection:
    """
    Deserialize a projection.

    Args:
        record: Mapping produced by ``to_dict``.

    Returns:
        PinholeProjection: Restored projection with fresh cached values.

    Raises:
        UnsupportedVersionError: If the record version is newer than
            SERIALIZATION_VERSION.
        KeyError: If a field is missing.
    """
    version = int(record.get("version", 0))
    if version > SERIALIZATION_VERSION:
        raise UnsupportedVersionError(
            f"Unsupported serialization version {version} "
            f"(maximum supported: {SERIALIZATION_VERSION})"
        )

    missing = [field for field in FIELD_ORDER if field not in record]
    if missing:
        raise KeyError(f"Serialized projection is missing fields: {missing}")

    get_section(record, "distortion")
    return PinholeProjection.from_config(record)


def save_projection(projection: PinholeProjection, path: Union[str, Path]) -> None:
    """Write a projection to a YAML file."""
    ConfigLoader().save(to_dict(projection), path)


def load_projection(path: Union[str, Path]) -> PinholeProjection:
    """Read a projection from a YAML file written by ``save_projection``."""
    return from_dict(ConfigLoader().load(path, use_cache=False))
