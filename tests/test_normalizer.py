"""
Tests for turning tracking signals into a canonical status.
"""

import pytest

from custom_components.parcel_tracker.app.models import (
    CanonicalStatus,
    ProgressStep,
    TrackingSignals,
)
from custom_components.parcel_tracker.app.normalizer import (
    StatusNormalizer,
    classify_status_text,
    normalize,
)


def step(text, completed=False, sequence=0, milestone=False):
    return ProgressStep(
        text=text,
        completed=completed,
        is_delivery_milestone=milestone,
        sequence=sequence,
    )


def test_delivered_marker_forces_final_milestone_completed():
    """Page-level delivery confirmation completes an unmarked final milestone"""
    signals = TrackingSignals(
        steps=[
            step("Shipped", completed=True, sequence=0),
            step("Delivered", completed=False, sequence=1, milestone=True),
        ],
        explicit_delivered_marker=True,
    )

    result = normalize(signals)

    assert result.status is CanonicalStatus.DELIVERED
    assert result.steps[1].completed is True
    assert result.status_text == "Delivered"


def test_normalize_does_not_mutate_input_steps():
    """Forced completion is applied to copies"""
    final = step("Delivered", sequence=1, milestone=True)
    signals = TrackingSignals(
        steps=[step("Shipped", completed=True), final],
        explicit_delivered_marker=True,
    )

    normalize(signals)

    assert final.completed is False


def test_completed_delivery_milestone_means_delivered():
    signals = TrackingSignals(
        steps=[
            step("Label Created", completed=True, sequence=0),
            step("Delivered to front porch", completed=True, sequence=1, milestone=True),
            step("Feedback", completed=False, sequence=2),
        ]
    )

    result = normalize(signals)

    assert result.status is CanonicalStatus.DELIVERED
    assert result.status_text == "Delivered to front porch"
    # Last step is not a delivery milestone, so it keeps its flag
    assert result.steps[2].completed is False


def test_all_steps_completed_means_delivered():
    signals = TrackingSignals(
        steps=[
            step("Label Created", completed=True, sequence=0),
            step("Picked up", completed=True, sequence=1),
        ]
    )

    result = normalize(signals)

    assert result.status is CanonicalStatus.DELIVERED
    assert result.status_text == "Delivered"


def test_latest_completed_step_is_current_status():
    """Reverse scan picks the later of two completed steps"""
    signals = TrackingSignals(
        steps=[
            step("Label Created", completed=True, sequence=0),
            step("Departed Facility", completed=True, sequence=1),
            step("Out for Delivery", completed=False, sequence=2),
        ]
    )

    result = normalize(signals)

    assert result.status_text == "Departed Facility"
    assert result.status is CanonicalStatus.IN_TRANSIT


def test_steps_are_ordered_by_sequence():
    signals = TrackingSignals(
        steps=[
            step("Arrived at Facility", completed=True, sequence=1),
            step("Label Created", completed=True, sequence=0),
            step("Out for Delivery", completed=False, sequence=2),
        ]
    )

    result = normalize(signals)

    assert [s.sequence for s in result.steps] == [0, 1, 2]
    assert result.status_text == "Arrived at Facility"


def test_nothing_completed_reports_first_step():
    signals = TrackingSignals(
        steps=[
            step("Label Created", sequence=0),
            step("Shipped", sequence=1),
        ]
    )

    result = normalize(signals)

    assert result.status_text == "Label Created"
    assert result.status is CanonicalStatus.PENDING


def test_page_status_used_without_steps():
    result = normalize(TrackingSignals(page_status_text="Out for Delivery Today"))

    assert result.status is CanonicalStatus.OUT_FOR_DELIVERY
    assert result.status_text == "Out for Delivery Today"
    assert result.steps == []


def test_no_signals_is_unknown():
    result = normalize(TrackingSignals())

    assert result.status is CanonicalStatus.UNKNOWN
    assert result.status_text == "Unknown"
    assert result.steps == []


@pytest.mark.parametrize(
    "signals",
    [
        TrackingSignals(),
        TrackingSignals(page_status_text=""),
        TrackingSignals(page_status_text="   "),
        TrackingSignals(steps=[step("")]),
        TrackingSignals(steps=[step("???", completed=False)]),
        TrackingSignals(page_status_text="Status not found"),
        TrackingSignals(explicit_delivered_marker=True),
    ],
)
def test_normalize_always_returns_a_status(signals):
    result = normalize(signals)

    assert isinstance(result.status, CanonicalStatus)


@pytest.mark.parametrize(
    "token",
    ["Status not found", "STATUS_NOT_FOUND", "cms.stApp.mnp.inTransit", "{{status}}"],
)
def test_placeholder_tokens_are_never_shown(token):
    result = normalize(TrackingSignals(page_status_text=token))

    assert result.status is CanonicalStatus.UNKNOWN
    assert result.status_text == "Unknown"


def test_placeholder_step_text_with_delivered_marker():
    result = normalize(
        TrackingSignals(
            steps=[step("cms.stApp.delivered", completed=False, milestone=False)],
            explicit_delivered_marker=True,
        )
    )

    assert result.status is CanonicalStatus.DELIVERED
    assert result.status_text == "Delivered"


def test_custom_placeholder_pattern():
    normalizer = StatusNormalizer()
    normalizer.add_placeholder_pattern(r"^n/a$")

    result = normalizer.normalize(TrackingSignals(page_status_text="N/A"))

    assert result.status is CanonicalStatus.UNKNOWN
    assert normalizer.is_placeholder("n/a")


def test_empty_placeholder_table_shows_raw_text():
    normalizer = StatusNormalizer(placeholder_patterns=[])

    result = normalizer.normalize(TrackingSignals(page_status_text="STATUS_NOT_FOUND"))

    assert result.status_text == "STATUS_NOT_FOUND"
    assert result.status is CanonicalStatus.UNKNOWN


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Delivered, left at front door", CanonicalStatus.DELIVERED),
        ("Was out for delivery, now delivered", CanonicalStatus.DELIVERED),
        ("Out For Delivery", CanonicalStatus.OUT_FOR_DELIVERY),
        ("In Transit", CanonicalStatus.IN_TRANSIT),
        ("Departed from facility", CanonicalStatus.IN_TRANSIT),
        ("Arrived at hub", CanonicalStatus.IN_TRANSIT),
        ("Shipped", CanonicalStatus.IN_TRANSIT),
        ("Label created", CanonicalStatus.PENDING),
        ("Processing at origin", CanonicalStatus.PENDING),
        ("Exception: address unknown", CanonicalStatus.UNKNOWN),
        ("", CanonicalStatus.UNKNOWN),
        (None, CanonicalStatus.UNKNOWN),
    ],
)
def test_classify_status_text(text, expected):
    assert classify_status_text(text) is expected
