"""Tests for booking-time normalisation."""

from __future__ import annotations

import re

import pytest

from clinic_agent.tools.time_normalizer import normalize_time

_HHMM = re.compile(r"^\d{2}:\d{2}$")


class TestDocumentedExamples:
    def test_bare_hour(self):
        assert normalize_time("9") == "09:00"

    def test_already_canonical(self):
        assert normalize_time("14:30") == "14:30"

    def test_am_marker_and_padding(self):
        assert normalize_time(" 9:00 AM ") == "09:00"


class TestMeridiem:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("3pm", "15:00"),
            ("3 PM", "15:00"),
            ("3:45 pm", "15:45"),
            ("11 p.m.", "23:00"),
            ("12pm", "12:00"),
            ("12 am", "00:00"),
            ("12:30 AM", "00:30"),
            ("10am", "10:00"),
        ],
    )
    def test_converts_to_24_hour(self, raw, expected):
        assert normalize_time(raw) == expected

    def test_pm_on_24_hour_value_is_left_alone(self):
        assert normalize_time("15:00 pm") == "15:00"


class TestNoSemanticValidation:
    def test_out_of_range_hour_passes_through(self):
        assert normalize_time("25:00") == "25:00"

    def test_single_digit_hour_without_minutes(self):
        assert normalize_time("7") == "07:00"


class TestProperties:
    @pytest.mark.parametrize(
        "raw",
        ["9", "09", "9:05", "09:05", "23:59", " 7 ", "7 am", "7:15 PM", "12", "0", "12 pm"],
    )
    def test_idempotent_and_well_formed(self, raw):
        once = normalize_time(raw)
        assert _HHMM.match(once)
        assert normalize_time(once) == once
