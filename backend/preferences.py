"""
Overview Section Preferences

Per-device display preferences for the overview dashboard: section order,
hidden sections and the hero section. Collapsed state lives only in memory
for the current session.

Persistence is behind PreferencesRepository so the section logic does not
care where the blobs live. JsonFileRepository stores each blob as a small
JSON file keyed the same way the web client keys local storage.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from config import get_settings

logger = logging.getLogger(__name__)

STORAGE_ORDER_KEY = 'overview-section-order'
STORAGE_HIDDEN_KEY = 'overview-section-hidden'
STORAGE_HERO_KEY = 'overview-hero-section'

USER_DIR_PATTERN = re.compile(r'[A-Za-z0-9_-]+')


@dataclass(frozen=True)
class SectionConfig:
    id: str
    label: str


ALL_SECTIONS = [
    SectionConfig('kpis', 'Financial Snapshot'),
    SectionConfig('budget-utilization', 'Overall Company Spend'),
    SectionConfig('quarterly-pnl', 'Quarterly P&L'),
    SectionConfig('spending-per-act', 'Spending Per Act'),
    SectionConfig('staff-productivity', 'Team Metrics'),
    SectionConfig('ar-pipeline', 'A&R Pipeline'),
    SectionConfig('streaming-trends', 'Streaming Trends'),
]

DEFAULT_ORDER = [s.id for s in ALL_SECTIONS]


@dataclass
class SectionSettings:
    order: List[str] = field(default_factory=lambda: list(DEFAULT_ORDER))
    hidden: List[str] = field(default_factory=list)
    hero: Optional[str] = None


class PreferencesRepository:
    """Loads and saves SectionSettings"""

    def load(self) -> SectionSettings:
        raise NotImplementedError

    def save(self, settings: SectionSettings) -> None:
        raise NotImplementedError


class MemoryRepository(PreferencesRepository):
    """Keeps settings in memory; used by tests and ephemeral sessions"""

    def __init__(self, settings: SectionSettings = None):
        self.settings = settings or SectionSettings()
        self.saves = 0

    def load(self):
        return SectionSettings(list(self.settings.order), list(self.settings.hidden), self.settings.hero)

    def save(self, settings):
        self.settings = SectionSettings(list(settings.order), list(settings.hidden), settings.hero)
        self.saves += 1


def _section_ids(value) -> List[str]:
    """String entries of a stored list blob; anything else is dropped"""
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


class JsonFileRepository(PreferencesRepository):
    """
    One JSON file per storage key under a directory.

    Missing or unreadable files fall back to defaults.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f'{key}.json'

    def _read(self, key: str, fallback):
        path = self._path(key)
        if not path.exists():
            return fallback
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (ValueError, OSError) as e:
            logger.warning(f"Ignoring unreadable preference file {path}: {e}")
            return fallback

    def _write(self, key: str, value):
        self.directory.mkdir(parents=True, exist_ok=True)
        with open(self._path(key), 'w', encoding='utf-8') as f:
            json.dump(value, f)

    def load(self):
        order = self._read(STORAGE_ORDER_KEY, list(DEFAULT_ORDER))
        hidden = self._read(STORAGE_HIDDEN_KEY, [])
        hero = self._read(STORAGE_HERO_KEY, None)
        order = _section_ids(order)
        if not order:
            order = list(DEFAULT_ORDER)
        hidden = _section_ids(hidden)
        if not isinstance(hero, str):
            hero = None
        return SectionSettings(order=order, hidden=hidden, hero=hero)

    def save(self, settings):
        self._write(STORAGE_ORDER_KEY, settings.order)
        self._write(STORAGE_HIDDEN_KEY, settings.hidden)
        self._write(STORAGE_HERO_KEY, settings.hero)


class OverviewSections:
    """
    Section ordering and visibility for the overview dashboard.

    Every change is saved through the repository immediately, except
    collapse toggles which are session-only.
    """

    def __init__(self, repository: PreferencesRepository):
        self.repository = repository
        settings = repository.load()

        # Saved order first, then any catalog sections added since
        order = list(settings.order)
        for section_id in DEFAULT_ORDER:
            if section_id not in order:
                order.append(section_id)

        self.order: List[str] = order
        self.hidden = set(settings.hidden)
        self.hero: Optional[str] = settings.hero
        self.collapsed = set()

    def _save(self):
        self.repository.save(SectionSettings(
            order=list(self.order),
            hidden=sorted(self.hidden),
            hero=self.hero,
        ))

    @property
    def visible_sections(self) -> List[str]:
        return [s for s in self.order if s not in self.hidden]

    @property
    def hidden_sections(self) -> List[SectionConfig]:
        return [s for s in ALL_SECTIONS if s.id in self.hidden]

    def set_order(self, new_visible_order: List[str]):
        """Reorder visible sections; sections not listed keep their place at the end"""
        tail = [s for s in self.order if s not in new_visible_order]
        self.order = list(new_visible_order) + tail
        self._save()

    def toggle_visibility(self, section_id: str):
        if section_id in self.hidden:
            self.hidden.discard(section_id)
        else:
            self.hidden.add(section_id)
        self._save()

    def show_section(self, section_id: str):
        if section_id not in self.order:
            self.order.append(section_id)
        self.hidden.discard(section_id)
        self._save()

    def toggle_collapse(self, section_id: str):
        if section_id in self.collapsed:
            self.collapsed.discard(section_id)
        else:
            self.collapsed.add(section_id)

    def is_collapsed(self, section_id: str) -> bool:
        return section_id in self.collapsed

    def set_hero_section(self, section_id: Optional[str]):
        self.hero = section_id
        self._save()

    def to_dict(self) -> Dict:
        return {
            'order': list(self.order),
            'visible': self.visible_sections,
            'hidden': [{'id': s.id, 'label': s.label} for s in self.hidden_sections],
            'collapsed': sorted(self.collapsed),
            'hero': self.hero,
        }


def load_sections(user_id: str = None, directory: Path = None) -> OverviewSections:
    """
    Sections backed by JSON files in PREFERENCES_DIR (or `directory`)

    With a user id the blobs live in a per-user subdirectory.

    Raises:
        ValueError: user id is not a plain name
    """
    base = Path(directory or get_settings().preferences_dir)
    if user_id is not None:
        if not USER_DIR_PATTERN.fullmatch(str(user_id)):
            raise ValueError(f"Invalid user id for preferences: {user_id!r}")
        base = base / str(user_id)
    return OverviewSections(JsonFileRepository(base))
