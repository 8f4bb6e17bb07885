"""
Notification Personas.

Named bundles of policy defaults. Five built-in personas ship with the package;
custom personas live in the preferences aggregate, and user personas can be
defined in YAML files that optionally extend a built-in via `base`.

User persona location: {personas_dir}/*.yaml

    name: analyst
    base: research
    description: Research plus market moves
    settings:
      domains:
        MARKET: true
      max_per_hour: 6
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ..core.logging import get_logger
from .fatigue import DeliveryBudget
from .models import ALL_DOMAINS, BatchMode, Domain, Priority

logger = get_logger(__name__)

DEFAULT_PERSONA_ID = "executive"


def _all_enabled() -> dict[Domain, bool]:
    return {domain: True for domain in ALL_DOMAINS}


@dataclass(frozen=True)
class PersonaSettings:
    """Policy defaults carried by a persona."""

    min_priority: Priority = Priority.LOW
    domains: dict[Domain, bool] = field(default_factory=_all_enabled)
    batch_mode: BatchMode = BatchMode.SMART
    quiet_hours_enabled: bool = True
    sound_enabled: bool = False
    max_per_hour: int = 8
    max_per_day: int = 30

    def is_domain_enabled(self, domain: Domain) -> bool:
        return bool(self.domains.get(domain, False))

    def budget(self, minimum_gap_seconds: float) -> DeliveryBudget:
        """Delivery budget using this persona's caps."""
        return DeliveryBudget(
            hourly_limit=self.max_per_hour,
            daily_limit=self.max_per_day,
            minimum_gap_seconds=minimum_gap_seconds,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "min_priority": self.min_priority.value,
            "domains": {d.value: enabled for d, enabled in self.domains.items()},
            "batch_mode": self.batch_mode.value,
            "quiet_hours_enabled": self.quiet_hours_enabled,
            "sound_enabled": self.sound_enabled,
            "max_per_hour": self.max_per_hour,
            "max_per_day": self.max_per_day,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], base: PersonaSettings | None = None) -> PersonaSettings:
        """
        Create from a dict, filling gaps from `base` (or the defaults).

        Raises:
            TypeError, ValueError: If a value is not recognized
        """
        base = base or cls()
        domains = dict(base.domains)
        for key, enabled in (data.get("domains") or {}).items():
            domains[Domain(str(key).upper())] = bool(enabled)

        return cls(
            min_priority=Priority(data.get("min_priority", base.min_priority.value)),
            domains=domains,
            batch_mode=BatchMode(data.get("batch_mode", base.batch_mode.value)),
            quiet_hours_enabled=bool(data.get("quiet_hours_enabled", base.quiet_hours_enabled)),
            sound_enabled=bool(data.get("sound_enabled", base.sound_enabled)),
            max_per_hour=int(data.get("max_per_hour", base.max_per_hour)),
            max_per_day=int(data.get("max_per_day", base.max_per_day)),
        )

    def validate(self) -> list[str]:
        """
        Validate persona settings.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors: list[str] = []
        if self.max_per_hour < 0:
            errors.append("max_per_hour must be non-negative")
        if self.max_per_day < 0:
            errors.append("max_per_day must be non-negative")
        if self.max_per_hour > self.max_per_day and self.max_per_day > 0:
            errors.append("max_per_hour should not exceed max_per_day")
        return errors


@dataclass(frozen=True)
class Persona:
    """A named policy bundle."""

    id: str
    name: str
    description: str
    settings: PersonaSettings
    icon: str = ""
    is_custom: bool = False
    source: str = "builtin"  # builtin, custom, user

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "description": self.description,
            "is_custom": self.is_custom,
            "source": self.source,
            "settings": self.settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Persona:
        """
        Create a custom persona from a persisted dict.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed
        """
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            settings=PersonaSettings.from_dict(data.get("settings") or {}),
            icon=data.get("icon", ""),
            is_custom=bool(data.get("is_custom", True)),
            source=data.get("source", "custom"),
        )


def _domains(*disabled: Domain) -> dict[Domain, bool]:
    return {domain: domain not in disabled for domain in ALL_DOMAINS}


# =============================================================================
# Built-in Persona Definitions
# =============================================================================

EXECUTIVE = Persona(
    id="executive",
    name="Executive",
    icon="🎯",
    description="Critical + High only, digest the rest. For C-Suite and busy days.",
    settings=PersonaSettings(
        min_priority=Priority.HIGH,
        domains=_domains(Domain.NEWS),
        batch_mode=BatchMode.SMART,
        quiet_hours_enabled=True,
        sound_enabled=False,
        max_per_hour=3,
        max_per_day=15,
    ),
)

MONITOR = Persona(
    id="monitor",
    name="Monitor",
    icon="📡",
    description="Everything batched, no interrupts. Perfect for deep work.",
    settings=PersonaSettings(
        min_priority=Priority.LOW,
        domains=_domains(),
        batch_mode=BatchMode.DIGEST,
        quiet_hours_enabled=False,
        sound_enabled=False,
        max_per_hour=0,
        max_per_day=1,
    ),
)

LIVEWIRE = Persona(
    id="livewire",
    name="Live Wire",
    icon="⚡",
    description="Real-time for all high+ signals. Active monitoring mode.",
    settings=PersonaSettings(
        min_priority=Priority.HIGH,
        domains=_domains(),
        batch_mode=BatchMode.REALTIME,
        quiet_hours_enabled=False,
        sound_enabled=True,
        max_per_hour=10,
        max_per_day=50,
    ),
)

RESEARCH = Persona(
    id="research",
    name="Research",
    icon="🔬",
    description="Deep focus on 1-2 domains, suppress the rest.",
    settings=PersonaSettings(
        min_priority=Priority.MEDIUM,
        domains=_domains(Domain.TECHNOLOGY, Domain.MARKET, Domain.NEWS),
        batch_mode=BatchMode.SMART,
        quiet_hours_enabled=True,
        sound_enabled=False,
        max_per_hour=5,
        max_per_day=25,
    ),
)

ZEN = Persona(
    id="zen",
    name="Zen",
    icon="💤",
    description="Digest only, once per day. For vacation and weekends.",
    settings=PersonaSettings(
        min_priority=Priority.CRITICAL,
        domains=_domains(Domain.TECHNOLOGY, Domain.MARKET, Domain.NEWS),
        batch_mode=BatchMode.DIGEST,
        quiet_hours_enabled=True,
        sound_enabled=False,
        max_per_hour=1,
        max_per_day=5,
    ),
)

BUILTIN_PERSONAS: dict[str, Persona] = {
    p.id: p for p in (EXECUTIVE, MONITOR, LIVEWIRE, RESEARCH, ZEN)
}


def get_builtin_persona(persona_id: str) -> Persona | None:
    """Get a built-in persona by id (case-insensitive)."""
    return BUILTIN_PERSONAS.get(persona_id.lower())


# =============================================================================
# User Persona Loader
# =============================================================================


class PersonaLoader:
    """
    Loads user-defined personas from YAML with inheritance support.

    A persona file may name a built-in (or an earlier user persona) as `base`;
    its settings are inherited and individual keys overridden.

    Usage:
        loader = PersonaLoader(Path("userdata/personas"))
        persona = loader.get_persona("analyst")
    """

    def __init__(self, persona_dir: Path | None = None) -> None:
        self._dir = persona_dir
        self._personas: dict[str, Persona] = {}
        self._loaded = False

    def _ensure_loaded(self) -> None:
        """Lazy-load user personas on first access."""
        if self._loaded:
            return
        self._loaded = True

        if self._dir and self._dir.exists():
            self._load_personas()

    def _load_personas(self) -> None:
        if not self._dir:
            return

        for persona_file in sorted(self._dir.glob("*.yaml")):
            try:
                with open(persona_file, encoding="utf-8") as f:
                    data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Failed to load persona %s: %s", persona_file, e)
                continue

            if not isinstance(data, dict):
                logger.warning("Invalid persona file: %s", persona_file)
                continue

            try:
                persona = self._parse_persona(persona_file.stem, data)
            except (TypeError, ValueError) as e:
                logger.warning("Invalid persona %s: %s", persona_file, e)
                continue

            errors = persona.settings.validate()
            if errors:
                logger.warning("Persona %s rejected: %s", persona.id, "; ".join(errors))
                continue

            self._personas[persona.id] = persona
            logger.debug("Loaded user persona: %s", persona.id)

    def _parse_persona(self, stem: str, data: dict[str, Any]) -> Persona:
        name = str(data.get("name", stem))
        persona_id = str(data.get("id", name)).lower()

        base_settings: PersonaSettings | None = None
        base_name = data.get("base")
        if base_name:
            base = get_builtin_persona(str(base_name)) or self._personas.get(str(base_name).lower())
            if base is None:
                logger.warning("Persona %s references unknown base: %s", name, base_name)
            else:
                base_settings = base.settings

        settings = PersonaSettings.from_dict(data.get("settings") or {}, base=base_settings)
        return Persona(
            id=persona_id,
            name=name,
            description=data.get("description", f"User persona: {name}"),
            settings=settings,
            icon=data.get("icon", ""),
            is_custom=True,
            source="user",
        )

    def get_persona(self, persona_id: str) -> Persona | None:
        """Get a user persona by id (case-insensitive)."""
        self._ensure_loaded()
        return self._personas.get(persona_id.lower())

    def list_personas(self) -> list[Persona]:
        """All successfully loaded user personas."""
        self._ensure_loaded()
        return list(self._personas.values())

