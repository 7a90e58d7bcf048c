"""
Profile seeding.

Seed data is a JSON array of ``{"address", "name", "phoneNumber",
"responsable"}`` objects, read from the ``BENEFICIARIES_DATA`` environment
variable or, failing that, from a ``beneficiaries.json`` file.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from subsidy_admin.core.exceptions import ConfigurationError, ValidationError
from subsidy_admin.services.profile_store import ProfileStore
from subsidy_admin.services.types import ProfileInput, ProfileRecord
from subsidy_admin.utils.validation import ProfileValidator, normalize_address


logger = structlog.get_logger(__name__)

SEED_ENV_VAR = "BENEFICIARIES_DATA"
DEFAULT_SEED_FILE = Path("beneficiaries.json")


def load_seed_entries(
    env_value: Optional[str] = None,
    seed_file: Optional[Path] = None,
) -> List[Dict[str, Any]]:
    """
    Raw seed entries, environment first.

    Raises:
        ConfigurationError: no source found, or the source is not a JSON array
    """
    if env_value is None:
        env_value = os.environ.get(SEED_ENV_VAR)
    seed_file = seed_file or DEFAULT_SEED_FILE

    if env_value:
        source, raw = SEED_ENV_VAR, env_value
    elif seed_file.exists():
        source, raw = str(seed_file), seed_file.read_text(encoding="utf-8")
    else:
        raise ConfigurationError(
            f"No beneficiaries data found. Set {SEED_ENV_VAR} or create {seed_file}",
            {"seed_file": str(seed_file)}
        )

    try:
        entries = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Failed to parse seed data from {source}", {"error": str(e)}) from e
    if not isinstance(entries, list):
        raise ConfigurationError(f"Seed data from {source} must be a JSON array")
    return entries


def parse_seed_entry(entry: Dict[str, Any]) -> ProfileInput:
    if not isinstance(entry, dict):
        raise ValidationError("Seed entry must be an object", {"entry": repr(entry)})
    return ProfileInput(
        address=normalize_address(entry.get("address") or ""),
        name=ProfileValidator.validate_name(entry.get("name")),
        phone_number=ProfileValidator.clean_optional(entry.get("phoneNumber", entry.get("phone_number"))),
        responsable=ProfileValidator.clean_optional(entry.get("responsable")),
    )


async def seed_profiles(store: ProfileStore, entries: List[Dict[str, Any]]) -> List[ProfileRecord]:
    """Upsert every entry; all entries are validated before the first write."""
    payloads = []
    for position, entry in enumerate(entries):
        try:
            payloads.append(parse_seed_entry(entry))
        except ValidationError as e:
            e.details["position"] = position
            raise

    records = []
    for payload in payloads:
        records.append(await store.upsert(payload))
        logger.info("Profile seeded", address=payload.address, name=payload.name)
    return records
