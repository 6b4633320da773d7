from __future__ import annotations

import json
import math
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd
from loguru import logger

from .config import CATALOG_PATH, SUPPORTED_LOCALES
from .errors import CatalogLoadError
from .normalize import basic_clean, normalize_for_lexical_index
from .pipeline_types import Ability, Attack, Card, localized


# ---------------------------
# Column detection / standardization
# ---------------------------

# Dataset exports disagree on key names; map the variants we have seen.
COLUMN_CANDIDATES: Dict[str, List[str]] = {
    "card_id": ["card_id", "id", "cardId", "ID"],
    "name": ["name", "Name", "card_name"],
    "category": ["category", "Category", "supertype", "card_type"],
    "stage": ["stage", "Stage", "evolution_stage", "evolutionStage"],
    "types": ["types", "Types", "type", "element", "elements"],
    "hp": ["hp", "HP", "hit_points"],
    "retreat_cost": ["retreat_cost", "retreat", "retreatCost", "Retreat"],
    "weakness": ["weakness", "weakness_type", "Weakness"],
    "rarity": ["rarity", "Rarity"],
    "set_name": ["set_name", "set", "Set", "expansion", "pack"],
    "ability": ["ability", "Ability", "abilities"],
    "attacks": ["attacks", "Attacks", "moves"],
    "flavor_text": ["flavor_text", "flavor", "flavorText", "Flavor"],
    "visual_description": [
        "visual_description",
        "image_description",
        "visualDescription",
        "description",
    ],
}

LOCALIZED_COLUMNS = ("name", "flavor_text", "visual_description")


def _standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Rename columns from the raw dataset to the canonical internal schema.

    Per-locale columns such as ``name_ja`` are folded into the localized
    mapping of their base column.
    """
    col_map: Dict[str, str] = {}
    lower_to_original = {str(c).lower(): c for c in df.columns}

    for canon, candidates in COLUMN_CANDIDATES.items():
        for candidate in candidates:
            if candidate in df.columns:
                col_map[candidate] = canon
                break
            cand_lower = candidate.lower()
            if cand_lower in lower_to_original:
                col_map[lower_to_original[cand_lower]] = canon
                break

    logger.debug("Standardizing columns with map: {}", col_map)
    df_std = df.rename(columns=col_map)

    for base in LOCALIZED_COLUMNS:
        for loc in SUPPORTED_LOCALES:
            extra = f"{base}_{loc}"
            if extra not in df_std.columns:
                continue
            if base not in df_std.columns:
                df_std[base] = [{} for _ in range(len(df_std))]
            df_std[base] = [
                {**parse_localized_text(cur), loc: basic_clean(val)} if _present(val) else parse_localized_text(cur)
                for cur, val in zip(df_std[base], df_std[extra])
            ]

    missing = [c for c in ("card_id", "name") if c not in df_std.columns]
    if missing:
        logger.warning("Raw catalog is missing required columns: {}", missing)

    return df_std


# ---------------------------
# Field parsing helpers
# ---------------------------

def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def parse_localized_text(value: Any) -> Dict[str, str]:
    """
    Coerce a raw text field into ``{locale: text}``.

    A plain string is treated as English; dict values are cleaned and empty
    entries dropped.
    """
    if not _present(value):
        return {}
    if isinstance(value, dict):
        return {str(k): basic_clean(v) for k, v in value.items() if _present(v)}
    return {"en": basic_clean(value)}


def parse_int_field(value: Any) -> Optional[int]:
    """
    Parse hp / retreat cost.

    Numbers are truncated to int; strings use their first integer
    ("70 HP" -> 70). Anything else is None.
    """
    if not _present(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    m = re.search(r"-?\d+", str(value))
    return int(m.group(0)) if m else None


def parse_damage_value(damage: Any) -> Optional[int]:
    """
    Numeric part of an attack's damage.

    "40" -> 40, "50+" -> 50, "30x" -> 30; text without leading digits
    ("", "-", symbolic effects) has no numeric value.
    """
    if damage is None or isinstance(damage, bool):
        return None
    if isinstance(damage, (int, float)):
        if isinstance(damage, float) and math.isnan(damage):
            return None
        return int(damage)
    m = re.match(r"\s*(\d+)", str(damage))
    return int(m.group(1)) if m else None


def parse_types_field(value: Any) -> List[str]:
    """
    Parse the raw types field into a list of type names.

    Accepts lists or delimiter-separated strings ("Grass, Psychic").
    """
    if not _present(value):
        return []
    if isinstance(value, (list, tuple, set)):
        tokens = [str(v).strip() for v in value]
    else:
        tokens = [p.strip() for p in re.split(r"[;,/|]+", str(value))]
    out: List[str] = []
    for tok in tokens:
        if tok and tok not in out:
            out.append(tok)
    return out


def _optional_str(value: Any) -> Optional[str]:
    if not _present(value):
        return None
    if isinstance(value, dict):
        # Some exports localize categorical fields; keep the English key.
        return _optional_str(value.get("en") or next(iter(value.values()), None))
    return basic_clean(value)


def _parse_ability(value: Any) -> Optional[Ability]:
    if isinstance(value, list):
        value = value[0] if value else None
    if not isinstance(value, dict):
        return None
    name = parse_localized_text(value.get("name"))
    text = parse_localized_text(value.get("text") or value.get("effect"))
    if not name and not text:
        return None
    return Ability(name=name, text=text)


def _parse_attacks(value: Any) -> Tuple[Attack, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    attacks: List[Attack] = []
    for raw in value:
        if not isinstance(raw, dict):
            continue
        damage = raw.get("damage")
        attacks.append(
            Attack(
                name=parse_localized_text(raw.get("name")),
                damage="" if not _present(damage) else str(damage).strip(),
                text=parse_localized_text(raw.get("text") or raw.get("effect")),
                cost=tuple(parse_types_field(raw.get("cost"))),
            )
        )
    return tuple(attacks)


def build_search_text(card: Card, locale: str) -> str:
    """
    Build the lexical search text of a card for one locale:

    name + ability name/text + attack names/text + flavor text + visual description

    Final text is case-folded and whitespace-normalized.
    """
    parts: List[str] = [localized(card.name, locale)]
    if card.ability is not None:
        parts.append(localized(card.ability.name, locale))
        parts.append(localized(card.ability.text, locale))
    for attack in card.attacks:
        parts.append(localized(attack.name, locale))
        parts.append(localized(attack.text, locale))
    parts.append(localized(card.flavor_text, locale))
    parts.append(localized(card.visual_description, locale))
    return normalize_for_lexical_index(". ".join(p for p in parts if p))


# ---------------------------
# Catalog normalization
# ---------------------------

def _row_to_card(row: Dict[str, Any]) -> Card:
    return Card(
        card_id=str(row["card_id"]).strip(),
        name=parse_localized_text(row.get("name")),
        category=_optional_str(row.get("category")),
        stage=_optional_str(row.get("stage")),
        types=frozenset(parse_types_field(row.get("types"))),
        hp=parse_int_field(row.get("hp")),
        retreat_cost=parse_int_field(row.get("retreat_cost")),
        weakness=_optional_str(row.get("weakness")),
        rarity=_optional_str(row.get("rarity")),
        set_name=_optional_str(row.get("set_name")),
        ability=_parse_ability(row.get("ability")),
        attacks=_parse_attacks(row.get("attacks")),
        flavor_text=parse_localized_text(row.get("flavor_text")),
        visual_description=parse_localized_text(row.get("visual_description")),
    )


def normalize_catalog_df(df_raw: pd.DataFrame) -> List[Card]:
    """
    Main normalization pipeline for the card dataset.

    Rows without an id are dropped; duplicate ids keep their first row.
    Input order is preserved.
    """
    logger.info("Normalizing catalog dataframe with {} raw rows", len(df_raw))

    df = _standardize_columns(df_raw.copy())
    if "card_id" not in df.columns:
        logger.error("No id column found after standardization; resulting catalog will be empty.")
        return []

    df = df[df["card_id"].map(_present)]
    df = df.assign(card_id=df["card_id"].astype(str).str.strip())
    dupes = int(df["card_id"].duplicated().sum())
    if dupes:
        logger.warning("Dropping {} duplicate card ids", dupes)
    df = df.drop_duplicates(subset=["card_id"], keep="first").reset_index(drop=True)

    cards = [_row_to_card(row) for row in df.to_dict(orient="records")]
    logger.info("Catalog normalization complete. Final rows: {}", len(cards))
    return cards


# ---------------------------
# IO helpers
# ---------------------------

def load_raw_catalog(path: Path = CATALOG_PATH) -> pd.DataFrame:
    """
    Load the raw card dataset: a JSON array of card objects, or
    ``{"cards": [...]}``.
    """
    if not path.exists():
        raise CatalogLoadError(f"Card dataset not found at {path}")

    logger.info("Loading raw catalog from {}", path)
    try:
        with path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, ValueError) as e:
        raise CatalogLoadError(f"Card dataset at {path} is unreadable: {e}") from e

    if isinstance(payload, dict):
        payload = payload.get("cards", [])
    if not isinstance(payload, list):
        raise CatalogLoadError(f"Card dataset at {path} must be a list of cards")
    return pd.DataFrame.from_records(payload)


def load_catalog(path: Path = CATALOG_PATH) -> List[Card]:
    """
    Convenience helper: load and normalize the bundled dataset.
    """
    cards = normalize_catalog_df(load_raw_catalog(path))
    logger.info("Loaded catalog with {} cards", len(cards))
    return cards


def index_by_id(cards: Iterable[Card]) -> Dict[str, Card]:
    return {c.card_id: c for c in cards}
