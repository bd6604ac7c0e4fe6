from typing import Dict, Iterable, Tuple

from ..schemas.charts import CelestialBodyPosition
from .constants import ELEMENT, MODALITY

# Nodes are points, not planets; they do not count towards the balances
BALANCE_EXCLUDED = {"TrueNode", "Chiron"}


def balances(bodies: Iterable[CelestialBodyPosition]) -> Tuple[Dict[str,int], Dict[str,int]]:
    e = {"fire":0,"earth":0,"air":0,"water":0}
    m = {"cardinal":0,"fixed":0,"mutable":0}
    for b in bodies:
        if b.body in BALANCE_EXCLUDED:
            continue
        e[ELEMENT[b.sign]] += 1
        m[MODALITY[b.sign]] += 1
    return e, m
