# asesor/classifier.py
from .utils import normalizar_texto

# Frases que piden derivación a un humano (WhatsApp). No se analiza negación:
# "no quiero cotizar" también deriva.
CONTACT_KEYWORDS = [
    "hablar con alguien",
    "hablar con un asesor",
    "asesor humano",
    "derivar",
    "derívame",
    "derivame",
    "whatsapp",
    "coordinar visita",
    "coordinar una visita",
    "quiero coordinar",
    "agendar visita",
    "agendar una visita",
    "cotizar",
    "cotización",
    "cotizacion",
    "cotizar visita",
    "hablar por teléfono",
    "llamar",
    "contacto humano",
    "contactarme",
    "contacten",
    "agenda una visita",
    "quiero cotizar",
    "quiero hablar con alguien",
]

_KEYWORDS_NORMALIZADAS = [normalizar_texto(k) for k in CONTACT_KEYWORDS]

def tiene_intencion_contacto(mensaje: str) -> bool:
    m = normalizar_texto(mensaje)
    return any(k in m for k in _KEYWORDS_NORMALIZADAS)
