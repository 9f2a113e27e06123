"""Tests for document parsing in the domain layer."""

from datetime import UTC, datetime

import pytest

from gallery_portal.domain.access import (
    UNSET,
    AccessType,
    GrantSettings,
    grant_from_document,
    provided_or,
)
from gallery_portal.domain.packages import (
    PackageStatus,
    next_status,
    package_from_document,
)
from gallery_portal.domain.selections import flag_from_document
from gallery_portal.errors import MalformedDocumentError


def test_grant_document_round_trip_defaults() -> None:
    grant = grant_from_document(
        "g1:c1",
        {
            "galleryId": "g1",
            "clientId": "c1",
            "accessType": "select",
            "selectionDeadline": "2026-06-01T12:00:00+00:00",
        },
    )

    assert grant.access_type == AccessType.SELECT
    assert grant.selection_deadline == datetime(2026, 6, 1, 12, tzinfo=UTC)
    assert grant.max_selections is None
    assert grant.selection_count == 0


def test_unknown_enum_value_is_malformed() -> None:
    with pytest.raises(MalformedDocumentError):
        package_from_document(
            "p1", {"galleryId": "g1", "clientId": "c1", "status": "archived"}
        )


def test_missing_required_field_is_malformed() -> None:
    with pytest.raises(MalformedDocumentError):
        flag_from_document({"galleryId": "g1", "mediaId": "m1"})


def test_bad_timestamp_is_malformed() -> None:
    with pytest.raises(MalformedDocumentError):
        grant_from_document(
            "g1:c1", {"galleryId": "g1", "clientId": "c1", "expiryDate": "soon"}
        )


def test_grant_settings_patch_contains_only_provided_fields() -> None:
    patch = GrantSettings(max_selections=None, access_type=AccessType.SELECT).provided()

    assert patch == {"accessType": "select", "maxSelections": None}


def test_status_successors() -> None:
    assert next_status(PackageStatus.DRAFT) == PackageStatus.SUBMITTED
    assert next_status(PackageStatus.APPROVED) == PackageStatus.DELIVERED
    assert next_status(PackageStatus.DELIVERED) is None


def test_provided_or_keeps_explicit_none() -> None:
    assert provided_or(UNSET, AccessType.VIEW) == AccessType.VIEW
    assert provided_or(AccessType.SELECT, AccessType.VIEW) == AccessType.SELECT
    assert provided_or(None, 5) is None
