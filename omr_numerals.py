"""Numeral and caption formatting in Latin or Bengali script.

Everything here is a pure lookup: no locale, no font knowledge. Bubble
geometry never depends on the script, only the printed labels do.
"""
from __future__ import annotations

from omr_config import NumeralSystem

BENGALI_DIGITS = ("০", "১", "২", "৩", "৪", "৫", "৬", "৭", "৮", "৯")
LATIN_OPTIONS = ("A", "B", "C", "D", "E")
BENGALI_OPTIONS = ("ক", "খ", "গ", "ঘ", "ঙ")

_DIGIT_VALUES = {digit: value for value, digit in enumerate(BENGALI_DIGITS)}
_DIGIT_VALUES.update({str(value): value for value in range(10)})

CAPTIONS = {
    "roll": ("Roll Number", "রোল নম্বর"),
    "subject_code": ("Subject Code", "বিষয় কোড"),
    "class": ("Class", "শ্রেণি"),
    "set_code": ("Set Code", "সেট কোড"),
    "question_set_code": ("Question Set Code", "প্রশ্নের সেট কোড"),
    "question": ("Q.", "প্রশ্ন"),
    "answer": ("Answer", "উত্তর"),
    "rules": ("Instructions", "নিয়মাবলী"),
    "rule_1": (
        "1. Fill the circles completely so the letter inside is hidden.",
        "১। বৃত্তাকার ঘরগুলো এমন ভাবে ভরাট করতে হবে যাতে ভেতরের লেখাটি দেখা না যায়।",
    ),
    "rule_2": ("2. Do not make stray marks on the sheet.", "২। উত্তরপত্রে অবাঞ্চিত দাগ দেয়া যাবেনা।"),
    "rule_3": ("3. Do not fold the answer sheet.", "৩। উত্তরপত্র ভাজ করা যাবেনা।"),
    "rule_4": (
        "4. Sheets without a set code will be rejected.",
        "৪। সেট কোডবিহীন উত্তরপত্র বাতিল হবে।",
    ),
    "signature": ("Invigilator signature with date", "কক্ষ পরিদর্শকের স্বাক্ষর তারিখসহ"),
    "warning": ("Do not mark inside this box.", "এই বক্সে কোনো দাগ দেয়া যাবে না।"),
    "sheet_title": ("Multiple Choice Answer Sheet", "বহুনির্বাচনি অভিক্ষার উত্তরপত্র"),
    "examinee_info": ("Examinee Information", "পরীক্ষার্থীর তথ্য"),
    "exam_half_yearly": ("Half-yearly exam", "অর্ধ-বার্ষিক পরীক্ষা"),
    "exam_annual": ("Annual exam", "বার্ষিক পরীক্ষা"),
    "exam_model_test": ("Model test", "মডেল টেস্ট পরীক্ষা"),
    "exam_other": ("............ exam", "..................... পরীক্ষা"),
    "name": ("Name:", "নাম:"),
    "field_roll": ("Roll:", "রোল:"),
    "field_class": ("Class:", "শ্রেণি:"),
    "field_subject": ("Subject:", "বিষয়:"),
    "field_department": ("Department:", "বিভাগ:"),
    "field_section": ("Section:", "সেকশন:"),
    "field_paper": ("Paper:", "পত্র:"),
    "field_subject_code": ("Subject code:", "বিষয় কোড:"),
    "field_date": ("Date:", "তারিখ:"),
}


def format_number(n: int, system: NumeralSystem) -> str:
    """Render a non-negative integer in the given script."""
    text = str(n)
    if system == NumeralSystem.BENGALI:
        return "".join(BENGALI_DIGITS[int(ch)] for ch in text)
    return text


def format_option(index: int, system: NumeralSystem) -> str:
    """Letter for option ``index`` (0-4)."""
    table = BENGALI_OPTIONS if system == NumeralSystem.BENGALI else LATIN_OPTIONS
    return table[index]


def parse_number(text: str) -> int:
    """Parse digits written in either script back to an integer."""
    text = text.strip()
    if not text:
        raise ValueError("empty numeral")
    value = 0
    for ch in text:
        try:
            value = value * 10 + _DIGIT_VALUES[ch]
        except KeyError:
            raise ValueError(f"not a digit: {ch!r}") from None
    return value


def parse_bengali_digits(text: str) -> int:
    for ch in text.strip():
        if ch not in BENGALI_DIGITS:
            raise ValueError(f"not a Bengali digit: {ch!r}")
    return parse_number(text)


def caption(key: str, system: NumeralSystem) -> str:
    latin, bengali = CAPTIONS[key]
    return bengali if system == NumeralSystem.BENGALI else latin


def default_set_codes(system: NumeralSystem) -> tuple:
    table = BENGALI_OPTIONS if system == NumeralSystem.BENGALI else LATIN_OPTIONS
    return tuple(table[:4])
