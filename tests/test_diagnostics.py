"""Tests for the diagnostic log and warning policy."""

from __future__ import annotations

import warnings

import pytest

from shapeweave.diagnostics import (
    KNOWN_CODES,
    DiagnosticLog,
    ShapeweaveWarning,
    WarningPolicy,
    parse_code_list,
)
from shapeweave.errors import DiagnosticError


class TestParseCodeList:
    def test_single_code(self):
        assert parse_code_list("X01") == frozenset({"X01"})

    def test_multiple_codes(self):
        assert parse_code_list("X01,R01") == frozenset({"X01", "R01"})

    def test_whitespace_stripped(self):
        assert parse_code_list("X01 , L01") == frozenset({"X01", "L01"})

    def test_empty_string(self):
        assert parse_code_list("") == frozenset()

    def test_unknown_code_rejected(self):
        with pytest.raises(ValueError, match="Unknown diagnostic code.*Z99"):
            parse_code_list("Z99")

    def test_all_known_codes_accepted(self):
        assert parse_code_list(",".join(KNOWN_CODES)) == frozenset(KNOWN_CODES)


class TestRecord:
    def test_emits_warning(self):
        log = DiagnosticLog()
        with pytest.warns(ShapeweaveWarning, match=r"\[X01\]"):
            log.record("X01", "boom")

    def test_suppressed_code_is_still_logged(self):
        log = DiagnosticLog(WarningPolicy(suppress=frozenset({"X01"})))
        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter("always")
            log.record("X01", "quiet")
        assert len(w) == 0
        assert log.count("X01") == 1

    def test_info_does_not_warn(self):
        log = DiagnosticLog()
        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter("always")
            log.info("note")
        assert len(w) == 0
        assert log.messages[0].level == "info"
        assert log.messages[0].code == "I00"

    def test_structured_entry(self):
        log = DiagnosticLog(WarningPolicy(suppress=frozenset({"R01"})))
        entry = log.record("R01", "missing target", path="a.b")
        data = entry.to_dict()
        assert data["code"] == "R01"
        assert data["level"] == "warning"
        assert data["path"] == "a.b"
        assert data["text"] == "missing target"
        assert isinstance(data["timestamp"], float)

    def test_cap_keeps_newest(self):
        log = DiagnosticLog(WarningPolicy(suppress=frozenset({"X01"})), cap=3)
        for i in range(5):
            log.record("X01", f"m{i}")
        assert [m.text for m in log.messages] == ["m2", "m3", "m4"]
        assert log.count("X01") == 5

    def test_codes_and_clear(self):
        log = DiagnosticLog(WarningPolicy(suppress=frozenset({"X01", "N01"})))
        log.record("X01", "a")
        log.record("N01", "b")
        assert log.codes() == {"X01", "N01"}
        log.clear()
        assert log.codes() == set()
        assert not log.messages


class TestRaiseForPolicy:
    def test_escalated_code_raises(self):
        policy = WarningPolicy(warn_as_error=frozenset({"R01"}), suppress=frozenset({"R01"}))
        log = DiagnosticLog(policy)
        log.record("R01", "target x not found")
        with pytest.raises(DiagnosticError, match=r"\[R01\] target x not found"):
            log.raise_for_policy()

    def test_escalated_record_evicted_by_cap(self):
        policy = WarningPolicy(warn_as_error=frozenset({"R01"}), suppress=frozenset({"R01", "X02"}))
        log = DiagnosticLog(policy, cap=5)
        log.record("R01", "target x not found")
        for i in range(10):
            log.record("X02", f"missing v{i}")
        assert all(m.code == "X02" for m in log.messages)
        with pytest.raises(DiagnosticError, match=r"\[R01\] target x not found"):
            log.raise_for_policy()

    def test_other_codes_do_not_raise(self):
        policy = WarningPolicy(warn_as_error=frozenset({"R01"}), suppress=frozenset({"X01"}))
        log = DiagnosticLog(policy)
        log.record("X01", "bad expression")
        log.raise_for_policy()

    def test_default_policy_never_raises(self):
        log = DiagnosticLog(WarningPolicy(suppress=frozenset({"H01"})))
        log.record("H01", "nope")
        log.raise_for_policy()
