"""Tests for the verification list lifecycle."""

import pytest

from bulkverify.lists.states import ListStatus, can_transition, map_provider_status


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        ("uploading", "unverified", True),
        ("unverified", "processing", True),
        ("processing", "verified", True),
        ("processing", "processing", True),
        ("verified", "verified", True),
        ("uploading", "processing", False),
        ("unverified", "verified", False),
        ("verified", "processing", False),
        ("processing", "unverified", False),
    ],
)
def test_can_transition(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_completed_maps_to_verified():
    assert map_provider_status("completed", ListStatus.PROCESSING) == ListStatus.VERIFIED
    assert map_provider_status("COMPLETED", "processing") == ListStatus.VERIFIED


@pytest.mark.parametrize("remote", ["verifying", "ready", "preparing", None, ""])
def test_other_statuses_keep_processing(remote):
    assert map_provider_status(remote, ListStatus.PROCESSING) == ListStatus.PROCESSING


def test_verified_is_never_demoted():
    assert map_provider_status("verifying", ListStatus.VERIFIED) == ListStatus.VERIFIED
