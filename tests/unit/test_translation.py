"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""Tests for the helpers shared by the entity translators."""

import pytest

from tmsync.domain.models import UNSET, Project
from tmsync.translation import (
    METADATA_LENGTH,
    ResolvedDependencies,
    TranslationError,
    metadata,
    normalize_folder,
    or_unset,
    project_key,
    require_record,
    status_key,
    truncate,
    user_key,
)

pytestmark = pytest.mark.unit


class TestSentinels:
    @pytest.mark.parametrize("value", [None, "", "   ", "\t"])
    def test_blank_values_become_unset(self, value):
        assert or_unset(value) == UNSET
        assert user_key(value) == UNSET
        assert status_key(value, upper=True) == UNSET
        assert project_key(value) == UNSET

    def test_values_are_trimmed(self):
        assert or_unset("  alice ") == "alice"

    def test_upper(self):
        assert status_key(" pass ", upper=True) == "PASS"


class TestFolderNormalization:
    @pytest.mark.parametrize(
        "folder, prefix",
        [
            ("Regression", "Regression/"),
            ("Regression/", "Regression/"),
            ("  Regression/Smoke  ", "Regression/Smoke/"),
            ("", ""),
            ("   ", ""),
            (None, ""),
        ],
    )
    def test_normalize_folder(self, folder, prefix):
        assert normalize_folder(folder) == prefix


class TestMetadata:
    def test_name_and_value_are_truncated(self):
        entry = metadata("n" * 150, "v" * 150)

        assert len(entry.name) == METADATA_LENGTH
        assert len(entry.value) == METADATA_LENGTH

    def test_values_are_stringified(self):
        assert metadata("Story Points", 3.0).value == "3.0"
        assert metadata("Empty", None).value is None

    def test_truncate(self):
        assert truncate("abcdef", 3) == "abc"
        assert truncate(None, 3) is None


class TestContracts:
    def test_require_record(self):
        record = object()

        assert require_record(record, "test run") is record
        with pytest.raises(TranslationError, match="missing test run"):
            require_record(None, "test run")

    def test_missing_dependency_raises(self):
        deps = ResolvedDependencies(project=Project(id=1, name="Payments"))

        assert deps.require("project").name == "Payments"
        with pytest.raises(TranslationError) as error:
            deps.require("cycle", record="EXEC-1")
        assert error.value.record == "EXEC-1"
