"""
app/specialists.py
------------------
Specialist personas available to the patient and the keyword scopes used to
route free-text symptoms to them.

Routing is first-match: profiles are checked in catalog order and the first
profile with any scope keyword inside the (lower-cased) message wins.  The
order below is therefore part of the routing contract:

    general → eye → orthopedic → neurology → respiratory → digestive

e.g. "heartburn" routes to general (via "heart") before digestive sees it.

Usage:
    from app.specialists import DEFAULT_CATALOG

    profile = DEFAULT_CATALOG.get("eye")
    profile.title          # → "Eye Doctor"
    DEFAULT_CATALOG.get("dentist").key   # → "general" (unknown keys fall back)
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from pydantic import BaseModel, Field, TypeAdapter, ValidationError


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SpecialistProfile:
    """A conversational persona with its routing scope and report medicines."""
    key: str                     # unique identifier, e.g. "eye"
    title: str                   # display name, e.g. "Eye Doctor"
    scope: tuple[str, ...]       # lower-case keywords, substring-matched
    medicines: tuple[str, ...]   # printed on the prescription report


@dataclass(frozen=True)
class SpecialistCatalog:
    """
    Immutable, ordered set of specialist profiles.

    Built once at startup and handed to the DialogueRouter explicitly.
    Iteration order is the routing priority order.
    """
    profiles: tuple[SpecialistProfile, ...]
    default_key: str = "general"

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for profile in self.profiles:
            if profile.key in seen:
                raise ValueError(f"Duplicate specialist key: {profile.key!r}")
            if not profile.scope:
                raise ValueError(f"Specialist {profile.key!r} has an empty scope")
            # A blank keyword is a substring of every message.
            if any(not keyword.strip() for keyword in profile.scope):
                raise ValueError(
                    f"Specialist {profile.key!r} has a blank scope keyword"
                )
            seen.add(profile.key)
        if self.default_key not in seen:
            raise ValueError(
                f"Default specialist {self.default_key!r} is not in the catalog"
            )

    def __iter__(self) -> Iterator[SpecialistProfile]:
        return iter(self.profiles)

    def __len__(self) -> int:
        return len(self.profiles)

    def __contains__(self, key: object) -> bool:
        return any(profile.key == key for profile in self.profiles)

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(profile.key for profile in self.profiles)

    @property
    def default(self) -> SpecialistProfile:
        return self.get(self.default_key)

    def get(self, key: str | None) -> SpecialistProfile:
        """Return the profile for `key`, or the default profile if unknown."""
        for profile in self.profiles:
            if profile.key == key:
                return profile
        return next(p for p in self.profiles if p.key == self.default_key)


# ---------------------------------------------------------------------------
# Built-in catalog
# ---------------------------------------------------------------------------

_DEFAULT_PROFILES: tuple[SpecialistProfile, ...] = (
    SpecialistProfile(
        key="general",
        title="General Doctor",
        scope=(
            "heart", "blood pressure", "general", "wellness", "fever",
            "fatigue", "weakness", "tired", "sick", "temperature",
        ),
        medicines=(
            "Paracetamol 500mg - Take 1 tablet every 6 hours",
            "Ibuprofen 400mg - Take 1 twice daily with food",
            "Vitamin C 1000mg - Take 1 daily",
        ),
    ),
    SpecialistProfile(
        key="eye",
        title="Eye Doctor",
        scope=(
            "eye", "vision", "sight", "blind", "blur", "red eye", "itchy eye",
            "watery", "conjunctivitis", "glasses", "cataract", "see", "eyes",
            "night",
        ),
        medicines=(
            "Artificial Tears - Apply 1-2 drops 4 times daily",
            "Tobramycin drops - 1 drop 3 times daily for 7 days",
        ),
    ),
    SpecialistProfile(
        key="orthopedic",
        title="Bone Doctor",
        scope=(
            "bone", "joint", "muscle", "back", "spine", "knee", "shoulder",
            "fracture", "arthritis", "sprain", "ankle", "wrist", "hip", "leg",
            "arm",
        ),
        medicines=(
            "Diclofenac 50mg - 1 tablet twice daily",
            "Calcium + Vitamin D - 1 tablet daily",
            "Ice pack 15 mins, 3 times daily",
        ),
    ),
    SpecialistProfile(
        key="neurology",
        title="Brain Doctor",
        scope=(
            "headache", "migraine", "brain", "dizzy", "dizziness", "numbness",
            "seizure", "memory", "faint",
        ),
        medicines=(
            "Sumatriptan 50mg - 1 at migraine onset",
            "Amitriptyline 25mg - 1 at bedtime",
        ),
    ),
    SpecialistProfile(
        key="respiratory",
        title="Lung Doctor",
        scope=(
            "cough", "breathing", "asthma", "bronchitis", "chest", "lung",
            "wheeze", "shortness of breath", "pneumonia", "cold", "flu",
            "breath",
        ),
        medicines=(
            "Salbutamol inhaler - 2 puffs when needed",
            "Amoxicillin 500mg - 1 tablet 3 times daily",
        ),
    ),
    SpecialistProfile(
        key="digestive",
        title="Stomach Doctor",
        scope=(
            "stomach", "nausea", "vomit", "diarrhea", "constipation", "acid",
            "heartburn", "bloating", "appetite", "digestion", "ulcer", "eat",
            "food", "belly",
        ),
        medicines=(
            "Omeprazole 20mg - 1 before breakfast",
            "Loperamide 2mg - 2 initially, 1 after each loose stool",
        ),
    ),
)

DEFAULT_CATALOG = SpecialistCatalog(profiles=_DEFAULT_PROFILES)


# ---------------------------------------------------------------------------
# Loading from file
# ---------------------------------------------------------------------------

class _ProfileEntry(BaseModel):
    """One entry of a specialist JSON file."""
    key: str
    title: str
    scope: list[str]
    medicines: list[str] = Field(default_factory=list)


_ENTRIES = TypeAdapter(list[_ProfileEntry])


def load_catalog(path: str | Path, default_key: str = "general") -> SpecialistCatalog:
    """
    Load a specialist catalog from a JSON file.

    The file holds a list of objects, in routing order:

        [
          {"key": "general", "title": "General Doctor",
           "scope": ["fever", ...], "medicines": ["Paracetamol 500mg", ...]},
          ...
        ]

    `scope` and `medicines` must be JSON lists of strings; a bare string is
    rejected rather than split into characters.  Scope keywords are
    lower-cased on load so substring matching against lower-cased patient
    text stays case-insensitive.

    Raises:
        ValueError: if the file is not a list of well-formed profiles, or the
                    catalog invariants (unique keys, non-empty scopes without
                    blank keywords, known default key) do not hold.
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"Specialist file {path} must contain a JSON list")

    try:
        entries = _ENTRIES.validate_python(raw)
    except ValidationError as exc:
        raise ValueError(f"Malformed specialist entry in {path}: {exc}") from exc

    profiles = tuple(
        SpecialistProfile(
            key=entry.key,
            title=entry.title,
            scope=tuple(keyword.lower() for keyword in entry.scope),
            medicines=tuple(entry.medicines),
        )
        for entry in entries
    )
    return SpecialistCatalog(profiles=profiles, default_key=default_key)
