import pytest

from schedule_scrapers.data_quality.time_validation import (
    TimeDayValidator,
    expand_day_token,
    parse_hhmm,
    split_day_tokens,
    split_time_range,
    to_24h,
)


@pytest.fixture
def validator():
    return TimeDayValidator()


@pytest.mark.parametrize("raw, expected", [
    ("21:00", "21:00"),
    ("9pm", "21:00"),
    ("9:30 p.m.", "21:30"),
    ("12am", "00:00"),
    ("12pm", "12:00"),
    ("2AM", "02:00"),
    ("midnight", "00:00"),
    ("8", "08:00"),
    ("late", None),
    ("", None),
    (None, None),
    ("25:00", None),
])
def test_to_24h(raw, expected):
    assert to_24h(raw) == expected


def test_parse_hhmm_rejects_out_of_range():
    assert parse_hhmm("23:59") == (23, 59)
    assert parse_hhmm("24:00") is None
    assert parse_hhmm("9pm") is None


@pytest.mark.parametrize("raw, expected", [
    ("9pm-2am", ("21:00", "02:00")),
    ("8 - 12am", ("08:00", "00:00")),
    ("8-12am", ("08:00", "00:00")),
    ("21:00 to 02:00", ("21:00", "02:00")),
    ("9pm", ("21:00", None)),
    ("", (None, None)),
])
def test_split_time_range(raw, expected):
    assert split_time_range(raw) == expected


def test_day_tokens_expand_and_split():
    assert expand_day_token("TH") == "thursday"
    assert expand_day_token("Fridays") == "friday"
    assert expand_day_token("every Tuesday") == "tuesday"
    assert expand_day_token("someday") is None
    assert split_day_tokens("TH+SAT") == ["thursday", "saturday"]
    assert split_day_tokens("Thursday & Saturday") == ["thursday", "saturday"]
    assert split_day_tokens("wed, wed") == ["wednesday"]
    assert split_day_tokens("  ") == []


def test_am_pm_start_is_shifted_to_evening(validator, candidate_factory):
    candidate = candidate_factory(day="friday", start_time="08:00", end_time="12:00", confidence=0.7)

    corrected, issues = validator.validate(candidate)

    assert corrected.start_time == "20:00"
    assert corrected.end_time == "00:00"
    assert corrected.confidence >= 0.9
    assert corrected.overnight
    assert len(issues) == 1
    assert "AM instead of PM" in issues[0]
    assert "08:00-12:00 to 20:00-00:00" in issues[0]
    assert corrected.issues == issues
    # the input is not mutated
    assert candidate.start_time == "08:00"


def test_am_pm_shift_keeps_early_morning_end(validator, candidate_factory):
    corrected, _ = validator.validate(candidate_factory(start_time="09:00", end_time="02:00"))
    assert (corrected.start_time, corrected.end_time) == ("21:00", "02:00")

    corrected, _ = validator.validate(candidate_factory(start_time="08:00", end_time="11:30"))
    assert corrected.end_time == "23:30"


def test_overnight_span_is_valid(validator, candidate_factory):
    corrected, issues = validator.validate(candidate_factory(start_time="21:00", end_time="02:00", confidence=0.8))
    assert issues == []
    assert corrected.overnight
    assert corrected.confidence == pytest.approx(0.8)


def test_missing_end_time_is_left_absent(validator, candidate_factory):
    corrected, issues = validator.validate(candidate_factory(start_time="21:00", end_time=None))
    assert issues == []
    assert corrected.end_time is None
    assert not corrected.overnight


def test_afternoon_start_is_flagged_not_corrected(validator, candidate_factory):
    corrected, issues = validator.validate(candidate_factory(start_time="15:00", end_time="19:00", confidence=0.9))
    assert corrected.start_time == "15:00"
    assert any("unusually early" in i for i in issues)
    assert corrected.confidence == pytest.approx(0.6)


def test_impossible_range_is_flagged(validator, candidate_factory):
    corrected, issues = validator.validate(candidate_factory(start_time="22:00", end_time="19:00"))
    assert any("after end time" in i for i in issues)
    assert (corrected.start_time, corrected.end_time) == ("22:00", "19:00")
    assert corrected.confidence <= 0.6


def test_duration_checks(validator, candidate_factory):
    _, short = validator.validate(candidate_factory(start_time="21:00", end_time="21:30"))
    assert any("only 30 minutes" in i for i in short)

    _, long_ = validator.validate(candidate_factory(start_time="18:00", end_time="05:00"))
    assert any("longer than 8 hours" in i for i in long_)


def test_day_checks(validator, candidate_factory):
    _, issues = validator.validate(candidate_factory(day="funday"))
    assert any("not a recognised weekday" in i for i in issues)

    _, issues = validator.validate(candidate_factory(day="2024-06-14"))
    assert any("falls on a friday" in i for i in issues)


def test_unparseable_start_time(validator, candidate_factory):
    corrected, issues = validator.validate(candidate_factory(start_time="late", end_time="02:00", confidence=0.9))
    assert any("not a valid HH:MM" in i for i in issues)
    assert corrected.confidence == pytest.approx(0.6)


def test_validate_all_summary(validator, candidate_factory):
    candidates = [
        candidate_factory(start_time="08:00", end_time="12:00"),
        candidate_factory(start_time="21:00", end_time="02:00"),
        candidate_factory(start_time="22:00", end_time="19:00"),
        candidate_factory(start_time="21:00", end_time="21:30"),
        candidate_factory(day="funday", start_time="20:00", end_time="23:00"),
    ]

    results, summary = validator.validate_all(candidates)

    assert len(results) == 5
    assert summary.total == 5
    assert summary.am_pm_errors == 1
    assert summary.corrected == 1
    assert summary.impossible_ranges == 1
    assert summary.duration_issues == 1
    assert summary.other_issues == 1
    assert summary.overnight_spans == 2
