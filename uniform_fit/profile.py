"""
User-declared session inputs: reference height, gender and grade level.
"""

import math
import re
import logging
from dataclasses import dataclass
from typing import Optional, Union

from .config import Gender, GradeLevel

logger = logging.getLogger(__name__)

CM_PER_INCH = 2.54

GENDER_ALIASES = {
    'male': Gender.BOYS,
    'boy': Gender.BOYS,
    'boys': Gender.BOYS,
    'm': Gender.BOYS,
    'female': Gender.GIRLS,
    'girl': Gender.GIRLS,
    'girls': Gender.GIRLS,
    'f': Gender.GIRLS,
    'unisex': Gender.UNISEX,
}

GRADE_ALIASES = {
    'kindergarten': GradeLevel.KINDERGARTEN,
    'kinder': GradeLevel.KINDERGARTEN,
    'preschool': GradeLevel.KINDERGARTEN,
    'elementary': GradeLevel.ELEMENTARY,
    'junior high': GradeLevel.JUNIOR_HIGH,
    'junior highschool': GradeLevel.JUNIOR_HIGH,
    'junior high school': GradeLevel.JUNIOR_HIGH,
    'jhs': GradeLevel.JUNIOR_HIGH,
}

_NUMBER = re.compile(r'\d+(?:\.\d+)?')


def _strip_numeric(value: str) -> Optional[float]:
    cleaned = re.sub(r'[^\d.]', '', value)
    match = _NUMBER.search(cleaned)
    return float(match.group(0)) if match else None


def _feet_inches_to_inches(text: str) -> Optional[float]:
    # 5'4", 5 ft 4 in, 5ft, 5.5
    numbers = [float(n) for n in _NUMBER.findall(text)]
    if not numbers:
        return None
    feet = numbers[0]
    inches = numbers[1] if len(numbers) > 1 else 0.0
    return feet * 12 + inches


def parse_height_to_cm(value: Union[str, float, int, None], unit: Optional[str] = "cm") -> Optional[float]:
    """
    Convert a user-declared height to centimetres.

    Args:
        value: Raw height, number or free text ("152", "152 cm", "5'4\"")
        unit: "cm", "in" or "ft"; text containing "cm" is always read as cm

    Returns:
        Positive finite height in cm, or None when it cannot be parsed
    """

    if value is None or isinstance(value, bool):
        return None

    text = str(value).strip().lower()
    if not text:
        return None

    unit = (unit or "cm").strip().lower()

    if unit in ('cm', 'centimeter', 'centimeters') or 'cm' in text:
        height = _strip_numeric(text)
    elif unit in ('in', 'inch', 'inches'):
        inches = _strip_numeric(text)
        height = inches * CM_PER_INCH if inches is not None else None
    elif unit in ('ft', 'feet', 'ft/in'):
        inches = _feet_inches_to_inches(text)
        height = inches * CM_PER_INCH if inches is not None else None
    else:
        logger.warning(f"Unknown height unit '{unit}', treating value as cm")
        height = _strip_numeric(text)

    if height is None or not math.isfinite(height) or height <= 0:
        logger.warning(f"Unusable height input: {value!r} ({unit})")
        return None

    return height


def normalize_gender(value: Union[str, Gender]) -> Gender:
    """Map user-facing gender labels onto catalog partitions"""
    if isinstance(value, Gender):
        return value

    key = str(value or '').strip().lower()
    if key not in GENDER_ALIASES:
        raise ValueError(f"Unsupported gender: {value!r}")
    return GENDER_ALIASES[key]


def normalize_grade(value: Union[str, GradeLevel]) -> str:
    """Canonical grade label; unknown grades pass through unchanged"""
    if isinstance(value, GradeLevel):
        return value.value

    raw = str(value or '').strip()
    grade = GRADE_ALIASES.get(' '.join(raw.lower().split()))
    return grade.value if grade else raw


@dataclass
class UserProfile:
    """Inputs accepted once at session start"""
    gender: Gender
    grade_level: str
    reference_height_cm: Optional[float]
    height_input: str = ""
    height_unit: str = "cm"

    @classmethod
    def from_inputs(cls, height_value, height_unit: Optional[str], gender, grade_level) -> 'UserProfile':
        return cls(
            gender=normalize_gender(gender),
            grade_level=normalize_grade(grade_level),
            reference_height_cm=parse_height_to_cm(height_value, height_unit),
            height_input="" if height_value is None else str(height_value),
            height_unit=height_unit or "cm",
        )

    def to_dict(self):
        return {
            'gender': self.gender.value,
            'grade_level': self.grade_level,
            'reference_height_cm': self.reference_height_cm,
            'height_input': self.height_input,
            'height_unit': self.height_unit,
        }
