"""
Uniform catalog model and read-only catalog stores.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import requests
import yaml

from .config import CatalogConfig, Gender
from .exceptions import CatalogError


@dataclass(frozen=True)
class SizeSpec:
    """Garment dimensions for one size label"""
    chest: Optional[float] = None
    hips: Optional[float] = None
    price: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SizeSpec':
        def number(key):
            value = data.get(key)
            return float(value) if value not in (None, '') else None

        return cls(chest=number('chest'), hips=number('hips'), price=number('price') or 0.0)

    def to_dict(self) -> Dict[str, Any]:
        return {'chest': self.chest, 'hips': self.hips, 'price': self.price}


@dataclass
class CatalogEntry:
    """One uniform item and its size chart"""
    category: str
    gender: str
    grade_level: str
    sizes: Dict[str, SizeSpec] = field(default_factory=dict)
    id: Optional[str] = None
    name: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CatalogEntry':
        grade = data.get('grade_level', data.get('grdLevel'))
        if not data.get('category') or not data.get('gender') or not grade:
            raise ValueError(f"Catalog entry missing category/gender/grade: {data}")

        sizes = {
            str(name): SizeSpec.from_dict(spec or {})
            for name, spec in (data.get('sizes') or {}).items()
        }
        return cls(
            category=data['category'],
            gender=data['gender'],
            grade_level=grade,
            sizes=sizes,
            id=None if data.get('id') is None else str(data['id']),
            name=data.get('name'),
            image_url=data.get('image_url', data.get('imageUrl')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'gender': self.gender,
            'grade_level': self.grade_level,
            'image_url': self.image_url,
            'sizes': {name: spec.to_dict() for name, spec in self.sizes.items()},
        }


def _gender_value(gender: Union[Gender, str]) -> str:
    return gender.value if isinstance(gender, Gender) else str(gender)


class CatalogStore:
    """Read-only query interface over the uniform catalog"""

    def fetch_entries(self, gender: Union[Gender, str], grade_level: str, category: str) -> List[CatalogEntry]:
        """Entries for (gender or Unisex, grade, category); empty list when none match"""
        raise NotImplementedError


class InMemoryCatalogStore(CatalogStore):
    """Catalog held in memory, optionally loaded from a YAML or JSON file"""

    def __init__(self, entries: Optional[Iterable[CatalogEntry]] = None):
        self.entries = list(entries or [])
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_file(cls, path: str) -> 'InMemoryCatalogStore':
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Catalog file not found: {path}")

        if path.suffix.lower() in ['.yaml', '.yml']:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or []
        elif path.suffix.lower() == '.json':
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        else:
            raise ValueError(f"Unsupported catalog file format: {path.suffix}")

        if isinstance(data, dict):
            data = data.get('uniforms', [])

        store = cls(CatalogEntry.from_dict(item) for item in data)
        store.logger.info(f"Loaded {len(store.entries)} catalog entries from {path}")
        return store

    def fetch_entries(self, gender, grade_level, category):
        genders = {_gender_value(gender), Gender.UNISEX.value}
        matches = [
            entry for entry in self.entries
            if entry.gender in genders and entry.grade_level == grade_level and entry.category == category
        ]
        self.logger.debug(f"Fetched {len(matches)} uniforms for {grade_level} {_gender_value(gender)} {category}")
        return matches


class HttpCatalogStore(CatalogStore):
    """Catalog served over HTTP at ``{base_url}/uniforms``"""

    def __init__(self, base_url: str, timeout_seconds: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self.logger = logging.getLogger(__name__)

    def fetch_entries(self, gender, grade_level, category):
        params = {
            'gender': [_gender_value(gender), Gender.UNISEX.value],
            'grade_level': grade_level,
            'category': category,
        }

        try:
            response = self.session.get(f"{self.base_url}/uniforms", params=params,
                                        timeout=self.timeout_seconds)
        except requests.RequestException as e:
            raise CatalogError(f"Catalog request failed: {e}") from e

        if response.status_code == 404:
            return []
        if response.status_code != 200:
            raise CatalogError(f"Catalog returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise CatalogError(f"Catalog returned invalid JSON: {e}") from e

        items = payload.get('uniforms', []) if isinstance(payload, dict) else payload
        entries = [CatalogEntry.from_dict(item) for item in items]
        self.logger.debug(f"Fetched {len(entries)} uniforms for {grade_level} {_gender_value(gender)} {category}")
        return entries


def create_catalog_store(config: CatalogConfig) -> CatalogStore:
    """Build the store named by the catalog configuration"""
    if config.base_url:
        return HttpCatalogStore(config.base_url, config.timeout_seconds)
    if config.source:
        return InMemoryCatalogStore.from_file(config.source)
    return InMemoryCatalogStore()
