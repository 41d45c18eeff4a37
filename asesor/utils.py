# asesor/utils.py
import math
import re
import unicodedata
from typing import Any, Dict, List, Optional

from config import Config

ROLES_VALIDOS = ("user", "assistant")
RE_CONTROL = re.compile(r"[\x00-\x1f\x7f]")

# ==========================================
# 1. NORMALIZACIÓN DE TEXTO
# ==========================================
def normalizar_texto(texto: str) -> str:
    """Quita tildes y pasa a minúsculas ('Ñuñoa' → 'nunoa')."""
    if not texto:
        return ""
    sin_tildes = "".join(c for c in unicodedata.normalize("NFD", texto) if unicodedata.category(c) != "Mn")
    return sin_tildes.lower()

# ==========================================
# 2. SANITIZACIÓN DE MENSAJES ENTRANTES
# ==========================================
def sanitizar_mensaje(valor: str, max_largo: int = Config.MAX_MESSAGE_LENGTH) -> str:
    limpio = RE_CONTROL.sub("", valor).strip()
    return limpio[:max_largo]

def sanitizar_historial(mensajes: List[Any], max_mensajes: int = Config.HISTORIAL_MAX) -> List[Dict[str, str]]:
    """
    Descarta entradas con rol desconocido o contenido no-string,
    limpia el resto y conserva solo los últimos `max_mensajes`.
    """
    validos = []
    for m in mensajes:
        if not isinstance(m, dict):
            continue
        if m.get("role") not in ROLES_VALIDOS or not isinstance(m.get("content"), str):
            continue
        validos.append({"role": m["role"], "content": sanitizar_mensaje(m["content"])})
    return validos[-max_mensajes:]

def ultimo_mensaje_usuario(mensajes: List[Dict[str, str]]) -> Optional[str]:
    for m in reversed(mensajes):
        if m["role"] == "user":
            return m["content"]
    return None

# ==========================================
# 3. NÚMEROS CON FORMATO CHILENO
# ==========================================
def a_numero(valor: Any) -> Optional[float]:
    """
    '2.500,50' → 2500.5 ; '3.500' → 3500.0
    El punto es separador de miles y la coma decimal. Devuelve None si no es finito.
    """
    if valor is None or isinstance(valor, bool):
        return None
    if isinstance(valor, (int, float)):
        return float(valor) if math.isfinite(valor) else None
    if not isinstance(valor, str):
        return None

    compacto = valor.strip().replace(".", "").replace(",", ".", 1)
    if not compacto:
        return None
    try:
        numero = float(compacto)
    except ValueError:
        return None
    return numero if math.isfinite(numero) else None

def formatear_miles(valor: float) -> str:
    """Entero redondeado con separador de miles es-CL: 12345.6 → '12.346'."""
    entero = int(math.floor(valor + 0.5))
    return f"{entero:,}".replace(",", ".")

# ==========================================
# 4. SLUGS DE PROYECTO
# ==========================================
def construir_slug(*partes: Optional[str]) -> str:
    texto = " ".join(p for p in partes if p).strip()
    slug = re.sub(r"[^a-z0-9]+", "-", normalizar_texto(texto))
    return slug.strip("-")
