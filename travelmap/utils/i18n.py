"""Display names for countries and continents."""

from typing import Dict, Optional

from travelmap import config

RU_COUNTRY_NAMES: Dict[str, str] = {
    "AD": "Андорра",
    "AE": "ОАЭ",
    "AF": "Афганистан",
    "AL": "Албания",
    "AM": "Армения",
    "AO": "Ангола",
    "AR": "Аргентина",
    "AT": "Австрия",
    "AU": "Австралия",
    "AZ": "Азербайджан",
    "BE": "Бельгия",
    "BR": "Бразилия",
    "CA": "Канада",
    "CN": "Китай",
    "CO": "Колумбия",
    "CZ": "Чехия",
    "DE": "Германия",
    "DK": "Дания",
    "DZ": "Алжир",
    "EC": "Эквадор",
    "EE": "Эстония",
    "ES": "Испания",
    "ET": "Эфиопия",
    "FI": "Финляндия",
    "FR": "Франция",
    "GB": "Великобритания",
    "GE": "Грузия",
    "HK": "Гонконг",
    "HU": "Венгрия",
    "ID": "Индонезия",
    "IL": "Израиль",
    "IN": "Индия",
    "IT": "Италия",
    "JO": "Иордания",
    "KG": "Киргизия",
    "KZ": "Казахстан",
    "MX": "Мексика",
    "MY": "Малайзия",
    "NG": "Нигерия",
    "NO": "Норвегия",
    "PL": "Польша",
    "PT": "Португалия",
    "PY": "Парагвай",
    "RO": "Румыния",
    "RU": "Россия",
    "SE": "Швеция",
    "SG": "Сингапур",
    "TH": "Таиланд",
    "TM": "Туркмения",
    "TR": "Турция",
    "UA": "Украина",
    "US": "США",
    "UY": "Уругвай",
    "UZ": "Узбекистан",
    "ZA": "ЮАР",
}

RU_CONTINENT_NAMES: Dict[str, str] = {
    "Africa": "Африка",
    "Europe": "Европа",
    "Asia": "Азия",
    "Oceania": "Океания",
    "North America": "Северная Америка",
    "South America": "Южная Америка",
    "Antarctica": "Антарктида",
}


def country_name(iso2: str, fallback: Optional[str] = None, language: str = config.DISPLAY_LANGUAGE) -> str:
    code = (iso2 or "").strip().upper()
    if language == "ru" and code in RU_COUNTRY_NAMES:
        return RU_COUNTRY_NAMES[code]
    return fallback or code


def continent_name(continent: str, fallback: Optional[str] = None, language: str = config.DISPLAY_LANGUAGE) -> str:
    key = (continent or "").strip()
    if language == "ru" and key in RU_CONTINENT_NAMES:
        return RU_CONTINENT_NAMES[key]
    return fallback or key


def flag_emoji(iso2: str) -> str:
    """Regional indicator pair for a two-letter code, empty for anything else."""
    code = (iso2 or "").strip().upper()
    if len(code) != 2 or not code.isascii() or not code.isalpha():
        return ""
    return "".join(chr(0x1F1E6 + ord(letter) - ord("A")) for letter in code)
