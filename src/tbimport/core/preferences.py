"""Import Preferences for trial balance imports.

Provides data-driven configuration with sensible defaults. Preferences are
read from a JSON file and deep-merged over DEFAULT_PREFERENCES.
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

from tbimport.core.models import DualSidedPolicy, ImportMode

logger = logging.getLogger(__name__)

# Default preferences (used when nothing is configured)
DEFAULT_PREFERENCES = {
    "$schema": "import_preferences_v1",
    "version": "1.0",

    "import": {
        "import_mode": "auto",
        "group_duplicates_to_notes": False,
        "sheet_name": None,
        "dual_sided_policy": "dominant"
    },

    "detection": {
        "header_scan_rows": 80,
        "profile_sample_rows": 200
    },

    "balance": {
        "tolerance": 0.1,
        "imbalance_threshold": 1.0,
        "zero_threshold": 0.01
    },

    "accounts": {
        "aliases": {}
    }
}


@dataclass
class ImportPreferences:
    """Configuration surface exposed to the host application."""
    import_mode: ImportMode = ImportMode.AUTO
    group_duplicates_to_notes: bool = False
    sheet_name: Optional[str] = None
    dual_sided_policy: DualSidedPolicy = DualSidedPolicy.DOMINANT
    header_scan_rows: int = 80
    profile_sample_rows: int = 200
    balance_tolerance: Decimal = Decimal("0.1")
    imbalance_threshold: Decimal = Decimal("1.0")
    zero_threshold: Decimal = Decimal("0.01")
    account_aliases: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImportPreferences":
        """Build preferences from a (possibly partial) preference dictionary."""
        data = _deep_merge(DEFAULT_PREFERENCES, data or {})
        imports = data.get("import", {})
        detection = data.get("detection", {})
        balance = data.get("balance", {})
        accounts = data.get("accounts", {})

        return cls(
            import_mode=ImportMode(imports.get("import_mode", "auto")),
            group_duplicates_to_notes=bool(imports.get("group_duplicates_to_notes", False)),
            sheet_name=imports.get("sheet_name"),
            dual_sided_policy=DualSidedPolicy(imports.get("dual_sided_policy", "dominant")),
            header_scan_rows=int(detection.get("header_scan_rows", 80)),
            profile_sample_rows=int(detection.get("profile_sample_rows", 200)),
            balance_tolerance=Decimal(str(balance.get("tolerance", 0.1))),
            imbalance_threshold=Decimal(str(balance.get("imbalance_threshold", 1.0))),
            zero_threshold=Decimal(str(balance.get("zero_threshold", 0.01))),
            account_aliases=dict(accounts.get("aliases", {})),
        )

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "ImportPreferences":
        """
        Load preferences with fallback to defaults.

        Args:
            config_path: JSON preference file (optional)

        Returns:
            ImportPreferences instance
        """
        data: Dict[str, Any] = {}
        if config_path:
            config_path = Path(config_path)
            if config_path.exists():
                try:
                    with open(config_path, encoding='utf-8') as f:
                        data = json.load(f)
                    logger.debug(f"Loaded import preferences from {config_path}")
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning(f"Failed to load import preferences: {e}")
            else:
                logger.debug(f"No preference file at {config_path}, using defaults")

        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the JSON preference layout."""
        return {
            "$schema": DEFAULT_PREFERENCES["$schema"],
            "version": DEFAULT_PREFERENCES["version"],
            "import": {
                "import_mode": self.import_mode.value,
                "group_duplicates_to_notes": self.group_duplicates_to_notes,
                "sheet_name": self.sheet_name,
                "dual_sided_policy": self.dual_sided_policy.value,
            },
            "detection": {
                "header_scan_rows": self.header_scan_rows,
                "profile_sample_rows": self.profile_sample_rows,
            },
            "balance": {
                "tolerance": float(self.balance_tolerance),
                "imbalance_threshold": float(self.imbalance_threshold),
                "zero_threshold": float(self.zero_threshold),
            },
            "accounts": {"aliases": dict(self.account_aliases)},
        }

    def save(self, config_path: Path) -> None:
        """Save current preferences as JSON."""
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.info(f"Saved import preferences to {config_path}")


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """Deep merge two dictionaries, override takes precedence."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
