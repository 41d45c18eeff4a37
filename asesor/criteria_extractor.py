# asesor/criteria_extractor.py
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from .utils import a_numero, normalizar_texto

# ================================
# 1. Filtros de búsqueda
# ================================
@dataclass(frozen=True)
class Filtros:
    comuna: Optional[str] = None
    status: Optional[str] = None
    project_name: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    dormitorios: Optional[Tuple[int, ...]] = None  # 0 = studio / loft

    def a_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def vacio(self) -> bool:
        return not self.a_dict()

# ================================
# 2. Patrones
# ================================
# Número con formato chileno que no sea un conteo de dormitorios ("2 dormitorios", "3D")
_NUM = r"(\d[\d.,]*)(?![\d.,])(?!\s*(?:dormitorio|habitaci|d\b))"
_UF = r"(?:uf\.?\s*)?"

RE_RANGO = re.compile(rf"\b(?:entre|desde)\s*{_UF}{_NUM}\s*(?:y|hasta|a)\s*{_UF}{_NUM}", re.I)
RE_DESDE = re.compile(rf"\bdesde\s*{_UF}{_NUM}", re.I)
RE_HASTA = re.compile(rf"\bhasta\s*{_UF}{_NUM}", re.I)
RE_UF_SOLO = re.compile(rf"\buf\.?\s*{_NUM}", re.I)

RE_DORM_DIGITO = re.compile(r"(\d+)\s*(?:dormitorios?|habitaci(?:ón|on|ones)|d\b)", re.I)
RE_DORM_PALABRA = re.compile(r"\b(uno|una|dos|tres|cuatro|cinco|seis)\s*(?:dormitorios?|habitaci(?:ón|on|ones))\b", re.I)
RE_STUDIO = re.compile(r"\b(?:studio|loft)\b", re.I)

NUMEROS_PALABRA = {"uno": 1, "una": 1, "dos": 2, "tres": 3, "cuatro": 4, "cinco": 5, "seis": 6}

RE_PROYECTO = re.compile(r"proyecto\s+([a-záéíóúüñ0-9 ]+)", re.I)

_MAYUS = "A-ZÁÉÍÓÚÑ"
# Palabras con mayúscula que no son comunas: moneda y estados comerciales
_NO_COMUNA = r"(?!(?:UF|Verde|Blanco)\b)"
RE_COMUNA_ALT = re.compile(
    rf"\ben\s+{_NO_COMUNA}([{_MAYUS}][\wÁÉÍÓÚÑáéíóúñ]*"
    rf"(?:\s+(?:(?:de|del|la|las|los|lo)\s+)*{_NO_COMUNA}[{_MAYUS}][\wÁÉÍÓÚÑáéíóúñ]*)*)"
)

# ================================
# 3. Extractores individuales
# ================================
def extraer_rango_precio(texto: str) -> Tuple[Optional[float], Optional[float]]:
    """
    Prioridad: 'entre X y Y' > 'desde X' / 'hasta Y' > 'UF X' (precio exacto).
    """
    rango = RE_RANGO.search(texto)
    if rango:
        minimo, maximo = a_numero(rango.group(1)), a_numero(rango.group(2))
        if minimo is not None and maximo is not None:
            return minimo, maximo

    desde = RE_DESDE.search(texto)
    hasta = RE_HASTA.search(texto)
    minimo = a_numero(desde.group(1)) if desde else None
    maximo = a_numero(hasta.group(1)) if hasta else None
    if minimo is not None or maximo is not None:
        return minimo, maximo

    solo = RE_UF_SOLO.search(texto)
    if solo:
        valor = a_numero(solo.group(1))
        if valor is not None:
            return valor, valor

    return None, None

def extraer_dormitorios(texto: str) -> Optional[Tuple[int, ...]]:
    encontrados = set()
    for m in RE_DORM_DIGITO.finditer(texto):
        encontrados.add(int(m.group(1)))
    for m in RE_DORM_PALABRA.finditer(texto):
        encontrados.add(NUMEROS_PALABRA[m.group(1).lower()])
    if RE_STUDIO.search(texto):
        encontrados.add(0)
    return tuple(sorted(encontrados)) if encontrados else None

def extraer_status(texto: str) -> Optional[str]:
    if re.search(r"en\s+verde", texto, re.I):
        return "en verde"
    if re.search(r"entrega\s+inmediata", texto, re.I) or re.search(r"inmediata", texto, re.I):
        return "inmediata"
    if re.search(r"en\s+blanco", texto, re.I):
        return "en blanco"
    return None

def extraer_nombre_proyecto(texto: str) -> Optional[str]:
    m = RE_PROYECTO.search(texto)
    if m:
        nombre = m.group(1).strip()
        return nombre or None
    return None

def extraer_comuna(texto: str, comunas_conocidas: List[str]) -> Optional[str]:
    """Primera comuna conocida (en el orden de la lista) contenida en el mensaje."""
    normalizado = normalizar_texto(texto)
    for comuna in comunas_conocidas:
        if normalizar_texto(comuna) and normalizar_texto(comuna) in normalizado:
            return comuna

    alt = RE_COMUNA_ALT.search(texto)
    if alt:
        return alt.group(1).strip()
    return None

# ================================
# 4. FUNCIÓN PRINCIPAL
# ================================
def extraer_filtros(mensaje: str, comunas_conocidas: List[str]) -> Filtros:
    minimo, maximo = extraer_rango_precio(mensaje)
    return Filtros(
        comuna=extraer_comuna(mensaje, comunas_conocidas),
        status=extraer_status(mensaje),
        project_name=extraer_nombre_proyecto(mensaje),
        min_price=minimo,
        max_price=maximo,
        dormitorios=extraer_dormitorios(mensaje),
    )
