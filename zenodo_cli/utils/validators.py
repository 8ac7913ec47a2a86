"""Metadata validation for deposition updates.

Checks the fields Zenodo requires before a deposition can be saved or
published, so that a bad update is rejected locally instead of by the API.
"""

from dataclasses import dataclass, field
from typing import List

from zenodo_cli.core.data_models import Metadata

VALID_UPLOAD_TYPES = frozenset(
    {
        "publication",
        "poster",
        "presentation",
        "dataset",
        "image",
        "video",
        "software",
        "lesson",
        "physicalobject",
        "other",
    }
)

VALID_ACCESS_RIGHTS = frozenset({"open", "embargoed", "restricted", "closed"})


@dataclass
class MetadataValidationResult:
    """Result of a metadata validation check."""

    errors: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def __str__(self) -> str:
        if not self.errors:
            return "Metadata is valid."
        return "\n".join(f"  - {e}" for e in self.errors)


def _choices(values: frozenset) -> str:
    return ", ".join(sorted(values))


def validate_metadata(metadata: Metadata) -> MetadataValidationResult:
    """Validate required fields on deposition metadata.

    Args:
        metadata: Metadata to check

    Returns:
        MetadataValidationResult listing every problem found
    """
    result = MetadataValidationResult()
    errors = result.errors

    if not metadata.title:
        errors.append("title is required")

    if not metadata.description:
        errors.append("description is required")

    if not metadata.upload_type:
        errors.append("upload_type is required")
    elif metadata.upload_type not in VALID_UPLOAD_TYPES:
        errors.append(
            f"upload_type {metadata.upload_type!r} is invalid; "
            f"valid types: {_choices(VALID_UPLOAD_TYPES)}"
        )

    if not metadata.creators:
        errors.append("at least one creator is required")
    else:
        for i, creator in enumerate(metadata.creators):
            if not creator.name:
                errors.append(f"creators[{i}].name is required")

    if not metadata.publication_date:
        errors.append("publication_date is required")

    access = metadata.access_right
    if not access:
        errors.append("access_right is required")
        return result

    if access not in VALID_ACCESS_RIGHTS:
        errors.append(
            f"access_right {access!r} is invalid; valid values: {_choices(VALID_ACCESS_RIGHTS)}"
        )

    if access in ("open", "embargoed") and not metadata.license_id():
        errors.append("license is required when access_right is open or embargoed")

    if access == "embargoed" and not metadata.embargo_date:
        errors.append("embargo_date is required when access_right is embargoed")

    if access == "restricted" and not metadata.access_conditions:
        errors.append("access_conditions is required when access_right is restricted")

    return result
