"""
Unit tests for import preferences.
"""

import json
from decimal import Decimal

from tbimport.core.models import DualSidedPolicy, ImportMode
from tbimport.core.preferences import DEFAULT_PREFERENCES, ImportPreferences, _deep_merge


class TestImportPreferences:
    """Tests for loading and saving preferences."""

    def test_defaults(self):
        prefs = ImportPreferences.load()

        assert prefs.import_mode == ImportMode.AUTO
        assert prefs.group_duplicates_to_notes is False
        assert prefs.dual_sided_policy == DualSidedPolicy.DOMINANT
        assert prefs.header_scan_rows == 80
        assert prefs.balance_tolerance == Decimal("0.1")
        assert prefs.zero_threshold == Decimal("0.01")

    def test_partial_file_merged(self, tmp_path):
        path = tmp_path / "prefs.json"
        path.write_text(json.dumps({
            "import": {"import_mode": "previous_only"},
            "accounts": {"aliases": {"Petty Cash": "Cash on Hand"}},
        }))

        prefs = ImportPreferences.load(path)

        assert prefs.import_mode == ImportMode.PREVIOUS_ONLY
        assert prefs.group_duplicates_to_notes is False
        assert prefs.header_scan_rows == 80
        assert prefs.account_aliases == {"Petty Cash": "Cash on Hand"}

    def test_missing_file(self, tmp_path):
        prefs = ImportPreferences.load(tmp_path / "absent.json")
        assert prefs == ImportPreferences()

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "prefs.json"
        path.write_text("{not json")

        prefs = ImportPreferences.load(path)
        assert prefs.import_mode == ImportMode.AUTO

    def test_save_and_reload(self, tmp_path):
        prefs = ImportPreferences(
            import_mode=ImportMode.CURRENT_ONLY,
            group_duplicates_to_notes=True,
            dual_sided_policy=DualSidedPolicy.NET,
            imbalance_threshold=Decimal("5"),
        )
        path = tmp_path / "nested" / "prefs.json"
        prefs.save(path)

        reloaded = ImportPreferences.load(path)

        assert reloaded.import_mode == ImportMode.CURRENT_ONLY
        assert reloaded.group_duplicates_to_notes is True
        assert reloaded.dual_sided_policy == DualSidedPolicy.NET
        assert reloaded.imbalance_threshold == Decimal("5.0")

    def test_deep_merge_keeps_defaults(self):
        merged = _deep_merge(DEFAULT_PREFERENCES, {"balance": {"tolerance": 0.5}})

        assert merged["balance"]["tolerance"] == 0.5
        assert merged["balance"]["zero_threshold"] == 0.01
        assert DEFAULT_PREFERENCES["balance"]["tolerance"] == 0.1
