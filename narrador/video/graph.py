"""
Representación tipada del filtergraph de FFmpeg.

El grafo se arma con objetos (Filter, FilterChain, FilterGraph) y solo se
convierte a texto de `-filter_complex` al final. `validate()` detecta
errores estructurales antes de lanzar el encode.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from ..errors import GraphValidationError

logger = logging.getLogger(__name__)

Value = Union[int, float, str]

# Caracteres que obligan a citar un valor dentro de -filter_complex
SPECIAL_CHARS = set(",;[]:'\\ ")

DURATION_OPTIONS = {"d", "duration", "t", "offset", "end", "start"}


def format_number(value: float) -> str:
    """Número estable y sin notación científica; NaN/inf son un error."""
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, int):
        return str(value)
    if not math.isfinite(value):
        raise GraphValidationError("Número no finito en el grafo", fragment=repr(value))
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def quote(value: str) -> str:
    """Cita un valor textual si contiene separadores del filtergraph."""
    if value.startswith("'") and value.endswith("'") and len(value) > 1:
        return value
    if any(char in SPECIAL_CHARS for char in value):
        return "'" + value.replace("'", "'\\''") + "'"
    return value


def _format_value(value: Value) -> str:
    if isinstance(value, (int, float)):
        return format_number(value)
    return quote(str(value))


@dataclass
class Filter:
    """Un filtro: nombre, argumentos posicionales y opciones con nombre."""

    name: str
    args: Tuple[Value, ...] = ()
    options: Dict[str, Value] = field(default_factory=dict)

    @classmethod
    def of(cls, name: str, *args: Value, **options: Value) -> "Filter":
        return cls(name=name, args=tuple(args), options=dict(options))

    def serialize(self) -> str:
        parts = [_format_value(arg) for arg in self.args]
        parts.extend(f"{key}={_format_value(value)}" for key, value in self.options.items())
        if not parts:
            return self.name
        return f"{self.name}=" + ":".join(parts)


@dataclass
class FilterChain:
    """Pads de entrada -> filtros encadenados -> pads de salida."""

    inputs: List[str]
    filters: List[Filter]
    outputs: List[str]

    def serialize(self) -> str:
        head = "".join(f"[{label}]" for label in self.inputs)
        body = ",".join(f.serialize() for f in self.filters)
        tail = "".join(f"[{label}]" for label in self.outputs)
        return f"{head}{body}{tail}"


def _brackets_balanced(text: str) -> bool:
    depth = 0
    quoted = False
    escaped = False
    for char in text:
        if escaped:
            escaped = False
        elif char == "\\" and not quoted:
            escaped = True
        elif char == "'":
            quoted = not quoted
        elif quoted:
            continue
        elif char == "[":
            if depth:
                return False
            depth += 1
        elif char == "]":
            if not depth:
                return False
            depth -= 1
    return depth == 0 and not quoted


class FilterGraph:
    """Conjunto ordenado de cadenas que forman un -filter_complex."""

    def __init__(self, chains: Optional[Iterable[FilterChain]] = None):
        self.chains: List[FilterChain] = list(chains or [])

    def add(self, inputs: Sequence[str], filters: Sequence[Filter], outputs: Sequence[str]) -> FilterChain:
        chain = FilterChain(list(inputs), list(filters), list(outputs))
        self.chains.append(chain)
        return chain

    def serialize(self) -> str:
        return ";".join(chain.serialize() for chain in self.chains)

    def validate(self, external_inputs: Iterable[str], final_outputs: Iterable[str]) -> None:
        """
        Chequeo estructural del grafo.

        Args:
            external_inputs: Pads provistos por los -i ('0:v', '1:a', ...)
            final_outputs: Pads que se mapean con -map

        Raises:
            GraphValidationError: con el fragmento problemático
        """
        external: Set[str] = set(external_inputs)
        finals: Set[str] = set(final_outputs)
        produced: Dict[str, str] = {}
        consumed: Dict[str, str] = {}

        for chain in self.chains:
            fragment = self._safe_fragment(chain)
            if not chain.filters:
                raise GraphValidationError("Cadena sin filtros", fragment=fragment)
            for filter_ in chain.filters:
                self._validate_filter(filter_, fragment)
            if not _brackets_balanced(fragment):
                raise GraphValidationError("Corchetes desbalanceados", fragment=fragment)

            for label in chain.inputs:
                if label in consumed:
                    raise GraphValidationError(f"Pad [{label}] consumido dos veces", fragment=fragment)
                if label not in produced and label not in external:
                    raise GraphValidationError(f"Pad [{label}] no producido", fragment=fragment)
                consumed[label] = fragment
            for label in chain.outputs:
                if label in produced or label in external:
                    raise GraphValidationError(f"Pad [{label}] producido dos veces", fragment=fragment)
                produced[label] = fragment

        for label in finals:
            if label not in produced:
                raise GraphValidationError(f"Salida [{label}] no producida por el grafo", fragment=label)
            if label in consumed:
                raise GraphValidationError(f"Salida [{label}] ya consumida dentro del grafo", fragment=label)

        for label, fragment in produced.items():
            if label not in consumed and label not in finals:
                raise GraphValidationError(f"Pad [{label}] nunca consumido", fragment=fragment)

        logger.debug(f"Grafo válido: {len(self.chains)} cadenas, {len(produced)} pads")

    @staticmethod
    def _safe_fragment(chain: FilterChain) -> str:
        try:
            return chain.serialize()
        except GraphValidationError as e:
            names = ",".join(f.name for f in chain.filters)
            outputs = "".join(f"[{label}]" for label in chain.outputs)
            raise GraphValidationError(
                "Valor numérico inválido",
                fragment=f"{names}{outputs} ({e.fragment})",
            )

    @staticmethod
    def _validate_filter(filter_: Filter, fragment: str) -> None:
        if not filter_.name or not filter_.name.replace("_", "").isalnum():
            raise GraphValidationError(f"Nombre de filtro inválido {filter_.name!r}", fragment=fragment)
        for key, value in filter_.options.items():
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                if key in DURATION_OPTIONS and value < 0:
                    raise GraphValidationError(f"Duración negativa {key}={value}", fragment=fragment)
