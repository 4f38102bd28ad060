"""Tests for step configuration types and write-time validation."""

import pytest

from winback.models import (
    DEFAULT_STEPS, Channel, ConfigValidationError, StepConfig, parse_steps,
)
from winback.tests.conftest import make_step


class TestParseSteps:
    def test_sorts_by_ascending_offset(self):
        steps = parse_steps([make_step(60), make_step(14), make_step(30)])
        assert [s.day_offset for s in steps] == [14, 30, 60]

    def test_rejects_empty_list(self):
        with pytest.raises(ConfigValidationError, match="at least one step"):
            parse_steps([])

    def test_rejects_non_list(self):
        with pytest.raises(ConfigValidationError):
            parse_steps({"days": 14})

    def test_rejects_duplicate_offsets(self):
        with pytest.raises(ConfigValidationError, match="Duplicate step offset: 14"):
            parse_steps([make_step(14), make_step(30), make_step(14, "EMAIL")])

    @pytest.mark.parametrize("days", [0, -3, None, "14", 1.5, True])
    def test_rejects_bad_offsets(self, days):
        with pytest.raises(ConfigValidationError, match="days > 0"):
            parse_steps([make_step(days)])

    def test_rejects_unknown_channel(self):
        with pytest.raises(ConfigValidationError, match="SMS, EMAIL, or BOTH"):
            parse_steps([make_step(14, "PIGEON")])

    @pytest.mark.parametrize("template", ["", "   \n\t", None])
    def test_rejects_blank_template(self, template):
        with pytest.raises(ConfigValidationError, match="message template"):
            parse_steps([make_step(14, template=template)])

    def test_rejects_negative_discount(self):
        with pytest.raises(ConfigValidationError, match="discountPercent"):
            parse_steps([make_step(14, discountPercent=-5)])

    def test_missing_discount_defaults_to_zero(self):
        raw = {"days": 7, "channel": "EMAIL", "template": "Hello"}
        assert parse_steps([raw])[0].discount_percent == 0

    def test_keeps_email_subject(self):
        steps = parse_steps([make_step(30, "BOTH", emailSubject="{{discount}}% off")])
        assert steps[0].email_subject_template == "{{discount}}% off"
        assert steps[0].channel is Channel.BOTH


class TestStepConfigDict:
    def test_round_trips_wire_keys(self):
        raw = make_step(30, "BOTH", emailSubject="Come back", discountPercent=15)
        step = StepConfig.from_dict(raw)
        assert step.to_dict() == raw

    def test_omits_absent_subject(self):
        assert "emailSubject" not in StepConfig.from_dict(make_step(14)).to_dict()


class TestChannelTargets:
    def test_both_expands_to_sms_and_email(self):
        assert Channel.BOTH.targets() == (Channel.SMS, Channel.EMAIL)

    def test_single_channels(self):
        assert Channel.SMS.targets() == (Channel.SMS,)
        assert Channel.EMAIL.targets() == (Channel.EMAIL,)


class TestDefaultSteps:
    def test_defaults_pass_validation(self):
        parsed = parse_steps([s.to_dict() for s in DEFAULT_STEPS])
        assert [s.day_offset for s in parsed] == [14, 30, 60]
