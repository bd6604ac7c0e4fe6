SIGN_NAMES = ["Aries","Taurus","Gemini","Cancer","Leo","Virgo","Libra","Scorpio","Sagittarius","Capricorn","Aquarius","Pisces"]

ELEMENT = {
  "Aries":"fire","Leo":"fire","Sagittarius":"fire",
  "Taurus":"earth","Virgo":"earth","Capricorn":"earth",
  "Gemini":"air","Libra":"air","Aquarius":"air",
  "Cancer":"water","Scorpio":"water","Pisces":"water",
}
MODALITY = {
  "Aries":"cardinal","Cancer":"cardinal","Libra":"cardinal","Capricorn":"cardinal",
  "Taurus":"fixed","Leo":"fixed","Scorpio":"fixed","Aquarius":"fixed",
  "Gemini":"mutable","Virgo":"mutable","Sagittarius":"mutable","Pisces":"mutable",
}

BODY_NAMES = [
  "Sun","Moon","Mercury","Venus","Mars","Jupiter","Saturn","Uranus","Neptune","Pluto",
  "TrueNode","Chiron","Ascendant","Midheaven",
]
_BODY_RANK = {name: idx for idx, name in enumerate(BODY_NAMES)}


def norm360(lon: float) -> float:
    # float modulo can return 360.0 for tiny negatives
    x = lon % 360.0
    return 0.0 if x >= 360.0 else x

def body_rank(name: str) -> tuple:
    # unknown bodies sort after the canonical ones, alphabetically
    return (_BODY_RANK.get(name, len(BODY_NAMES)), name)

def sign_index_from_lon(lon: float) -> int:
    return int(norm360(lon) // 30) % 12

def sign_name_from_lon(lon: float) -> str:
    return SIGN_NAMES[sign_index_from_lon(lon)]

def sign_degree(lon: float) -> float:
    return norm360(lon) % 30.0
