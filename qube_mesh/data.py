"""Scenario rows and the providers that look them up by scenario key ("sno").

Rows are plain frozen dataclasses. Providers read a YAML list of mappings (one
file per workflow) or take in-memory records; field names are matched
case-insensitively with punctuation ignored, so ``offboardReason``,
``OFFBOARD_REASON`` and ``offboard_reason`` all bind the same field.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Generic, Iterable, List, Mapping, Optional, Type, TypeVar

import yaml

from qube_mesh.errors import ScenarioDataError, UnsupportedScenarioKey

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).parent / "scenarios"


def normalize_key(name: Any) -> str:
    return re.sub(r"[^A-Z0-9]", "", str(name).upper())


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class ScenarioRow:
    """Common fields of every scenario row."""

    sno: str
    query: str

    ALIASES = {}

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> ScenarioRow:
        by_key = {normalize_key(key): value for key, value in record.items()}
        for alias, target in cls.ALIASES.items():
            if normalize_key(target) not in by_key and normalize_key(alias) in by_key:
                by_key[normalize_key(target)] = by_key[normalize_key(alias)]
        values = {field.name: _text(by_key.get(normalize_key(field.name))) for field in fields(cls)}
        return cls(**values)


@dataclass(frozen=True)
class SupplierOffboardingRow(ScenarioRow):
    supplier_name: str = ""
    supplier_code: str = ""
    offboard_reason: str = ""

    ALIASES = {"reason_offboard": "offboard_reason", "offboarding_reason": "offboard_reason"}


@dataclass(frozen=True)
class ContractAmendmentRow(ScenarioRow):
    reason_amend: str = ""
    discussion: str = ""
    description: str = ""

    ALIASES = {"amendment_reason": "reason_amend"}


@dataclass(frozen=True)
class ContractTerminationRow(ScenarioRow):
    termination_status: str = ""
    termination_date: str = ""
    reason_terminate: str = ""

    ALIASES = {"termination_reason": "reason_terminate"}


@dataclass(frozen=True)
class ContractExtensionRow(ScenarioRow):
    extension_date: str = ""
    reason: str = ""
    modifications: str = ""
    update_option: str = ""
    applicable_options: str = ""
    modification_details: str = ""
    currency: str = ""
    estimated_cost: str = ""
    approval: str = ""

    ALIASES = {"reason_for_extension": "reason", "extension_reason": "reason"}


@dataclass(frozen=True)
class SupplierProfileUpdateRow(ScenarioRow):
    supplier_name: str = ""
    supplier_code: str = ""
    update_type: str = ""
    reason_action: str = ""
    upload_file: str = ""


RowT = TypeVar("RowT", bound=ScenarioRow)


class ScenarioDataProvider(Generic[RowT]):
    """Lookup of scenario rows by key for one workflow.

    Args:
        label: Human name used in error messages ("supplier offboarding").
        row_type: Row dataclass to build.
        records: In-memory records (mappings).
        path: YAML file with a list of records; read lazily on first use.
    """

    def __init__(
        self,
        label: str,
        row_type: Type[RowT],
        records: Optional[Iterable[Mapping[str, Any]]] = None,
        path: Optional[Path] = None,
    ) -> None:
        self.label = label
        self.row_type = row_type
        self.path = Path(path) if path else None
        self._records = list(records) if records is not None else None
        self._rows: Optional[List[RowT]] = None

    def _load_records(self) -> List[Mapping[str, Any]]:
        if self._records is not None:
            return self._records
        if self.path is None or not self.path.exists():
            logger.warning("No %s data file at %s", self.label, self.path)
            return []
        with open(self.path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or []
        if isinstance(loaded, Mapping):
            loaded = loaded.get("rows", [])
        return list(loaded)

    def rows(self) -> List[RowT]:
        if self._rows is None:
            built = [self.row_type.from_mapping(record) for record in self._load_records()]
            self._rows = [row for row in built if row.sno]
        return self._rows

    def keys(self) -> List[str]:
        return [row.sno for row in self.rows()]

    def get_row(self, sno: Any) -> RowT:
        wanted = _text(sno)
        for row in self.rows():
            if row.sno == wanted:
                if not row.query:
                    raise ScenarioDataError(
                        f'{self.label} data for SNO="{wanted}" has an empty QUERY'
                    )
                return row
        available = self.keys()
        raise UnsupportedScenarioKey(
            wanted,
            available,
            message=(
                f'No {self.label} data found for SNO="{wanted}". '
                f"Available SNOs: {', '.join(available) or '(none)'}"
            ),
        )


WORKFLOW_DATA = {
    "supplier_offboarding": ("supplier offboarding", SupplierOffboardingRow),
    "contract_amendment": ("contract amendment", ContractAmendmentRow),
    "contract_termination": ("contract termination", ContractTerminationRow),
    "contract_extension": ("contract extension", ContractExtensionRow),
    "supplier_profile_update": ("supplier profile update", SupplierProfileUpdateRow),
}


def default_providers(data_dir: Optional[Path] = None) -> Dict[str, ScenarioDataProvider]:
    """One provider per workflow, reading ``<data_dir>/<workflow>.yaml``."""
    directory = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
    return {
        workflow: ScenarioDataProvider(label, row_type, path=directory / f"{workflow}.yaml")
        for workflow, (label, row_type) in WORKFLOW_DATA.items()
    }
